"""
Live views over store subscriptions

A view owns one (or two) live queries and a derived projection. Every push
replaces the whole result set and the projection is recomputed from it,
memoized by a content hash of the snapshot plus the view parameters so an
unchanged push costs one hash.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from graftwatch.crowdsource.comments import CommentThread, build_thread
from graftwatch.auth.identity import UserProfile
from graftwatch.crowdsource.models import Comment, Report, Vote, VoteKind
from graftwatch.crowdsource.proximity import filter_by_type, nearby_with_distance
from graftwatch.store.base import (
    DocumentSnapshot,
    DocumentStore,
    Query,
    Subscription,
    snapshot_fingerprint,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMO_SIZE = 8


class LiveView(Generic[T]):
    """
    One live query plus a derived, memoized projection.

    Subclasses implement ``derive`` and may expose parameters through
    ``params``; changing a parameter calls ``recompute`` on the last
    snapshot without waiting for a push.
    """

    name = "view"

    def __init__(self, query: Query):
        self.query = query
        self.documents: List[DocumentSnapshot] = []
        self.state: Optional[T] = None
        self.version = 0
        self.error: Optional[Exception] = None
        self.compute_count = 0
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Callable[[T], None]] = []
        self._memo: "OrderedDict[str, T]" = OrderedDict()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self, store: DocumentStore) -> "LiveView[T]":
        self._subscription = await store.subscribe(self.query, self.on_snapshot, self.on_error)
        logger.debug(f"Opened {self.name} view on {self.query}")
        return self

    def close(self) -> None:
        """Stop receiving pushes. Writes already issued are unaffected."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._listeners.clear()

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def listen(self, callback: Callable[[T], None]) -> None:
        """Register a re-render callback; it fires with every new state."""
        self._listeners.append(callback)
        if self.state is not None:
            callback(self.state)

    # -------------------------------------------------------------------------
    # Push handling
    # -------------------------------------------------------------------------

    def params(self) -> Tuple[Any, ...]:
        return ()

    def derive(self, documents: List[DocumentSnapshot]) -> T:
        raise NotImplementedError

    def on_snapshot(self, documents: List[DocumentSnapshot]) -> None:
        self.documents = list(documents)
        self.error = None
        self.recompute()

    def on_error(self, error: Exception) -> None:
        self.error = error
        logger.warning(f"{self.name} view lost its subscription: {error}")

    def recompute(self) -> T:
        key = snapshot_fingerprint(self.documents, self.name, *self.params())
        if key in self._memo:
            self._memo.move_to_end(key)
            state = self._memo[key]
        else:
            state = self.derive(self.documents)
            self.compute_count += 1
            self._memo[key] = state
            if len(self._memo) > MEMO_SIZE:
                self._memo.popitem(last=False)

        self.state = state
        self.version += 1
        for callback in list(self._listeners):
            callback(state)
        return state


def _newest_first(reports: List[Report]) -> List[Report]:
    return sorted(reports, key=lambda r: r.created_seconds, reverse=True)


# =============================================================================
# REPORT VIEWS
# =============================================================================

@dataclass
class FeedEntry:
    report: Report
    distance_km: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.report.to_dict()
        data["distanceKm"] = round(self.distance_km, 3) if self.distance_km is not None else None
        return data


class PublicFeedView(LiveView[List[FeedEntry]]):
    """
    Approved reports, newest first, optionally narrowed to one corruption
    type and/or to the nearby radius (then ordered by distance).
    """

    name = "feed"

    def __init__(self, corruption_type: Optional[str] = None):
        super().__init__(Query("reports").where("status", "approved"))
        self.corruption_type = corruption_type
        self.origin: Optional[Tuple[float, float]] = None
        self.radius_km: Optional[float] = None

    def params(self) -> Tuple[Any, ...]:
        return (self.corruption_type, self.origin, self.radius_km)

    def set_type_filter(self, corruption_type: Optional[str]) -> List[FeedEntry]:
        self.corruption_type = corruption_type or None
        return self.recompute()

    def set_nearby(self, lat: float, lng: float, radius_km: Optional[float] = None) -> List[FeedEntry]:
        self.origin = (lat, lng)
        self.radius_km = radius_km
        return self.recompute()

    def clear_nearby(self) -> List[FeedEntry]:
        self.origin = None
        self.radius_km = None
        return self.recompute()

    def derive(self, documents: List[DocumentSnapshot]) -> List[FeedEntry]:
        # The query already filters on status; pushes are re-checked anyway
        reports = [r for r in map(Report.from_snapshot, documents) if r.is_public]

        if self.origin is not None:
            lat, lng = self.origin
            entries = [
                FeedEntry(report, distance)
                for report, distance in nearby_with_distance(reports, lat, lng, self.radius_km)
            ]
        else:
            entries = [FeedEntry(report) for report in _newest_first(reports)]

        if self.corruption_type:
            keep = {r.id for r in filter_by_type([e.report for e in entries], self.corruption_type)}
            entries = [e for e in entries if e.report.id in keep]
        return entries


class MapView(LiveView[List[Report]]):
    """Approved reports that can be placed on the map."""

    name = "map"

    def __init__(self):
        super().__init__(Query("reports").where("status", "approved"))

    def derive(self, documents: List[DocumentSnapshot]) -> List[Report]:
        return [
            r for r in map(Report.from_snapshot, documents)
            if r.is_public and r.location is not None
        ]


class OwnReportsView(LiveView[List[Report]]):
    """Everything one author submitted, any status, newest first."""

    name = "own_reports"

    def __init__(self, user_id: str):
        super().__init__(
            Query("reports").where("userId", user_id).order("createdAt", descending=True)
        )
        self.user_id = user_id

    def derive(self, documents: List[DocumentSnapshot]) -> List[Report]:
        reports = [r for r in map(Report.from_snapshot, documents) if r.user_id == self.user_id]
        return _newest_first(reports)


class AdminReportsView(LiveView[List[Report]]):
    name = "admin_reports"

    def __init__(self):
        super().__init__(Query("reports").order("createdAt", descending=True))

    def derive(self, documents: List[DocumentSnapshot]) -> List[Report]:
        return _newest_first([Report.from_snapshot(d) for d in documents])


class AdminUsersView(LiveView[List[UserProfile]]):
    name = "admin_users"

    def __init__(self):
        super().__init__(Query("users"))

    def derive(self, documents: List[DocumentSnapshot]) -> List[UserProfile]:
        users = [UserProfile.from_snapshot(d) for d in documents]
        return sorted(users, key=lambda u: u.email or u.uid)


class AdminCommentsView(LiveView[List[Comment]]):
    name = "admin_comments"

    def __init__(self):
        super().__init__(Query("comments").order("createdAt", descending=True))

    def derive(self, documents: List[DocumentSnapshot]) -> List[Comment]:
        comments = [Comment.from_snapshot(d) for d in documents]
        return sorted(comments, key=lambda c: c.created_seconds, reverse=True)


# =============================================================================
# SINGLE-REPORT VIEWS
# =============================================================================

class _DocumentView(LiveView[Optional[DocumentSnapshot]]):
    """Live copy of one document (None once it is deleted)."""

    def __init__(self, collection: str, doc_id: str, name: str):
        super().__init__(Query.document(collection, doc_id))
        self.name = name

    def derive(self, documents: List[DocumentSnapshot]) -> Optional[DocumentSnapshot]:
        return documents[0] if documents else None


class CommentThreadView(LiveView[CommentThread]):
    """
    Thread of one report.

    Watches the report document as well as its comments: once the report is
    gone its comments are orphans and the thread is empty.
    """

    name = "thread"

    def __init__(self, report_id: str):
        super().__init__(Query("comments").where("reportId", report_id))
        self.report_id = report_id
        self.report_view = _DocumentView("reports", report_id, "thread_report")

    @property
    def report_exists(self) -> bool:
        return self.report_view.state is not None

    async def open(self, store: DocumentStore) -> "CommentThreadView":
        await self.report_view.open(store)
        self.report_view.listen(lambda _: self.recompute() if self.is_open else None)
        await super().open(store)
        return self

    def close(self) -> None:
        self.report_view.close()
        super().close()

    def params(self) -> Tuple[Any, ...]:
        return (self.report_exists,)

    def derive(self, documents: List[DocumentSnapshot]) -> CommentThread:
        if not self.report_exists:
            return CommentThread(excluded_ids=sorted(d.id for d in documents))
        return build_thread([Comment.from_snapshot(d) for d in documents], self.report_id)


@dataclass
class ReportDetail:
    report: Optional[Report]
    user_vote: Optional[VoteKind] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report.to_dict() if self.report else None,
            "userVote": self.user_vote.value if self.user_vote else None,
        }


class ReportDetailView(LiveView[ReportDetail]):
    """
    One report with its live tally and, for a signed-in viewer, the viewer's
    own vote as stored (used to highlight the active button, never to decide
    between toggle and switch).
    """

    name = "detail"

    def __init__(self, report_id: str, user_id: Optional[str] = None):
        super().__init__(Query.document("reports", report_id))
        self.report_id = report_id
        self.user_id = user_id
        self.vote_view: Optional[_DocumentView] = None
        if user_id:
            self.vote_view = _DocumentView("votes", f"{report_id}_{user_id}", "detail_vote")

    async def open(self, store: DocumentStore) -> "ReportDetailView":
        if self.vote_view is not None:
            await self.vote_view.open(store)
            self.vote_view.listen(lambda _: self.recompute() if self.is_open else None)
        await super().open(store)
        return self

    def close(self) -> None:
        if self.vote_view is not None:
            self.vote_view.close()
        super().close()

    def _vote(self) -> Optional[VoteKind]:
        if self.vote_view is None or self.vote_view.state is None:
            return None
        return Vote.from_snapshot(self.vote_view.state).kind

    def params(self) -> Tuple[Any, ...]:
        vote = self._vote()
        return (vote.value if vote else None,)

    def derive(self, documents: List[DocumentSnapshot]) -> ReportDetail:
        report = Report.from_snapshot(documents[0]) if documents else None
        return ReportDetail(report=report, user_vote=self._vote() if report else None)
