"""
Moderation of report visibility

A report starts ``pending`` and only an administrator moves it. Every
status can reach every other status; ``approved`` is what makes a report
public. Content edits never change the status, and deleting a report does
not touch its votes or comments.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Union

from graftwatch.auth.identity import CurrentUser, require_admin
from graftwatch.core.constants import COLLECTION_REPORTS, COLLECTION_USERS, CORRUPTION_TYPES
from graftwatch.core.exceptions import NotFoundError, ReportValidationError
from graftwatch.crowdsource.models import Report, ReportStatus
from graftwatch.crowdsource.validation import ReportValidator
from graftwatch.store.base import DocumentStore, SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


# Admins may move freely between all states, including back to pending
ALLOWED_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    status: frozenset(ReportStatus) for status in ReportStatus
}


@dataclass
class Transition:
    """Result of a status change."""
    report_id: str
    previous: ReportStatus
    current: ReportStatus
    actor: str

    @property
    def changed(self) -> bool:
        return self.previous != self.current


def can_transition(current: ReportStatus, target: ReportStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def parse_status(status: Union[str, ReportStatus]) -> ReportStatus:
    try:
        return ReportStatus(status)
    except ValueError:
        raise ReportValidationError([f"Invalid status: {status}"])


class ModerationStateMachine:
    """Admin-only operations on reports and user profiles."""

    def __init__(self, store: DocumentStore, validator: Optional[ReportValidator] = None):
        self.store = store
        self.validator = validator or ReportValidator()

    async def _load(self, report_id: str) -> Report:
        snapshot = await self.store.get(COLLECTION_REPORTS, report_id)
        if snapshot is None:
            raise NotFoundError(f"Report {report_id} not found")
        return Report.from_snapshot(snapshot)

    async def set_status(
        self,
        report_id: str,
        user: Optional[CurrentUser],
        status: Union[str, ReportStatus]
    ) -> Transition:
        """
        Move a report to ``status``.

        Repeating a transition is harmless: the status stays the same and
        only ``updatedAt`` is refreshed.
        """
        admin = require_admin(user)
        target = parse_status(status)
        report = await self._load(report_id)

        if not can_transition(report.status, target):
            raise ReportValidationError([f"Cannot move from {report.status.value} to {target.value}"])

        await self.store.update(COLLECTION_REPORTS, report_id, {
            "status": target.value,
            "updatedAt": SERVER_TIMESTAMP,
        })

        logger.info(f"Report {report_id} status: {report.status.value} -> {target.value} by {admin.uid}")
        return Transition(report_id, report.status, target, admin.uid)

    async def approve(self, report_id: str, user: Optional[CurrentUser]) -> Transition:
        return await self.set_status(report_id, user, ReportStatus.APPROVED)

    async def reject(self, report_id: str, user: Optional[CurrentUser]) -> Transition:
        return await self.set_status(report_id, user, ReportStatus.REJECTED)

    async def reset_to_pending(self, report_id: str, user: Optional[CurrentUser]) -> Transition:
        return await self.set_status(report_id, user, ReportStatus.PENDING)

    async def edit_report(
        self,
        report_id: str,
        user: Optional[CurrentUser],
        description: Optional[str] = None,
        corruption_type: Optional[str] = None,
        address: Optional[str] = None,
        evidence_links: Optional[List[str]] = None,
        remove_image_indices: Optional[List[int]] = None
    ) -> Report:
        """
        Edit report content. The moderation status is left as it is.

        Args:
            description: New description
            corruption_type: New corruption type
            address: New human-readable address (coordinates are kept)
            evidence_links: Replacement list of evidence links
            remove_image_indices: Positions of inline images to drop
        """
        admin = require_admin(user)
        report = await self._load(report_id)

        fields, errors = {}, []
        if description is not None:
            if not description.strip():
                errors.append("Description is required")
            fields["description"] = description.strip()
        if corruption_type is not None:
            if corruption_type not in CORRUPTION_TYPES:
                errors.append(f"Unknown corruption type: {corruption_type}")
            fields["corruptionType"] = corruption_type
        if address is not None:
            fields["location.address"] = address.strip()
        if evidence_links is not None:
            links = [link.strip() for link in evidence_links if link and link.strip()]
            errors.extend(self.validator.check_evidence([], links))
            fields["evidenceLinks"] = links
        if remove_image_indices:
            drop = set(remove_image_indices)
            fields["evidenceBase64"] = [
                image for i, image in enumerate(report.evidence_base64) if i not in drop
            ]

        if errors:
            raise ReportValidationError(errors)
        if not fields:
            return report

        fields["updatedAt"] = SERVER_TIMESTAMP
        await self.store.update(COLLECTION_REPORTS, report_id, fields)
        logger.info(f"Report {report_id} edited by {admin.uid}: {sorted(fields)}")
        return await self._load(report_id)

    async def delete_report(self, report_id: str, user: Optional[CurrentUser]) -> None:
        """Remove a report whatever its status. Votes and comments stay."""
        admin = require_admin(user)
        await self._load(report_id)
        await self.store.delete(COLLECTION_REPORTS, report_id)
        logger.warning(f"Report {report_id} deleted by admin {admin.uid}")

    async def set_user_disabled(
        self,
        uid: str,
        user: Optional[CurrentUser],
        disabled: bool
    ) -> None:
        """Disable or re-enable an account. Its content stays."""
        admin = require_admin(user)
        if await self.store.get(COLLECTION_USERS, uid) is None:
            raise NotFoundError(f"User {uid} not found")
        await self.store.update(COLLECTION_USERS, uid, {"disabled": disabled})
        logger.info(f"User {uid} {'disabled' if disabled else 'enabled'} by {admin.uid}")

    async def delete_user_profile(self, uid: str, user: Optional[CurrentUser]) -> None:
        """Delete a profile document. Reports and comments are not cascaded."""
        admin = require_admin(user)
        await self.store.delete(COLLECTION_USERS, uid)
        logger.warning(f"User profile {uid} deleted by {admin.uid}")

