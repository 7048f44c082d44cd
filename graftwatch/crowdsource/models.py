"""
Domain records for crowdsourced corruption reports

Typed views over the documents kept in the store. Field names on the wire
follow the client's camelCase document layout.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from graftwatch.core.constants import VOTE_KINDS
from graftwatch.store.base import DocumentSnapshot, timestamp_seconds


class ReportStatus(str, Enum):
    """Moderation status of a report."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VoteKind(str, Enum):
    """Credibility vote kinds."""
    TRUE = "true"
    SUSPICIOUS = "suspicious"
    NEED_EVIDENCE = "needEvidence"


def empty_tally() -> Dict[str, int]:
    return {kind: 0 for kind in VOTE_KINDS}


def vote_id(report_id: str, user_id: str) -> str:
    """Document id of the single vote a user may hold on a report."""
    return f"{report_id}_{user_id}"


@dataclass
class Location:
    """Where the reported incident happened."""
    lat: float
    lng: float
    address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "address": self.address}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Location"]:
        if not data or data.get("lat") is None or data.get("lng") is None:
            return None
        return cls(
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            address=data.get("address") or "",
        )


@dataclass
class Report:
    """
    Corruption report submitted by a citizen.

    ``votes`` is the denormalized tally kept next to the individual vote
    records.
    """
    id: str
    user_id: str
    description: str
    corruption_type: str
    location: Optional[Location] = None
    evidence_base64: List[str] = field(default_factory=list)
    evidence_links: List[str] = field(default_factory=list)
    status: ReportStatus = ReportStatus.PENDING
    votes: Dict[str, int] = field(default_factory=empty_tally)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_public(self) -> bool:
        return self.status == ReportStatus.APPROVED

    @property
    def created_seconds(self) -> float:
        return timestamp_seconds(self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "description": self.description,
            "corruptionType": self.corruption_type,
            "location": self.location.to_dict() if self.location else None,
            "evidenceBase64": list(self.evidence_base64),
            "evidenceLinks": list(self.evidence_links),
            "status": self.status.value,
            "votes": dict(self.votes),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Report":
        data = snapshot.data
        votes = empty_tally()
        votes.update({k: int(v) for k, v in (data.get("votes") or {}).items()})
        return cls(
            id=snapshot.id,
            user_id=data.get("userId", ""),
            description=data.get("description", ""),
            corruption_type=data.get("corruptionType", ""),
            location=Location.from_dict(data.get("location")),
            evidence_base64=list(data.get("evidenceBase64") or []),
            evidence_links=list(data.get("evidenceLinks") or []),
            status=ReportStatus(data.get("status", ReportStatus.PENDING.value)),
            votes=votes,
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Vote:
    """One user's credibility vote on one report."""
    report_id: str
    user_id: str
    kind: VoteKind

    @property
    def id(self) -> str:
        return vote_id(self.report_id, self.user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"reportId": self.report_id, "userId": self.user_id, "type": self.kind.value}

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Vote":
        data = snapshot.data
        return cls(
            report_id=data["reportId"],
            user_id=data["userId"],
            kind=VoteKind(data["type"]),
        )


@dataclass
class Comment:
    """Discussion entry; ``parent_id`` links replies into a tree."""
    id: str
    report_id: str
    user_id: str
    text: str
    parent_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def created_seconds(self) -> float:
        return timestamp_seconds(self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reportId": self.report_id,
            "userId": self.user_id,
            "text": self.text,
            "parentId": self.parent_id,
            "createdAt": self.created_at.isoformat() if isinstance(self.created_at, datetime) else None,
        }

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Comment":
        data = snapshot.data
        return cls(
            id=snapshot.id,
            report_id=data.get("reportId", ""),
            user_id=data.get("userId", ""),
            text=data.get("text", ""),
            parent_id=data.get("parentId") or None,
            created_at=data.get("createdAt"),
        )

