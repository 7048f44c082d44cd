"""
Vote consistency engine

Keeps one vote per user per report and the denormalized tally on the report
in step with the vote records. The store offers no multi-document
transaction, so every cast is a short sequence of independent writes issued
in order:

    same kind again   -> delete vote record, tally[kind] -= 1
    different kind    -> tally[old] -= 1 (if any), write vote record,
                         tally[kind] += 1

Tally changes always go through the atomic increment, never a
read-modify-write of the report. Concurrent voters therefore commute, but a
failure between two steps leaves the tally off by one until an admin runs
``recount``.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from graftwatch.auth.identity import CurrentUser, require_admin, require_user
from graftwatch.core.constants import COLLECTION_REPORTS, COLLECTION_VOTES, VOTE_KINDS
from graftwatch.core.exceptions import (
    GraftWatchError,
    NotFoundError,
    PartialWriteError,
    ReportValidationError,
)
from graftwatch.crowdsource.models import Vote, VoteKind, Report, vote_id
from graftwatch.store.base import DocumentStore, Query

logger = logging.getLogger(__name__)


@dataclass
class VoteOutcome:
    """What a cast did."""
    report_id: str
    user_id: str
    previous: Optional[VoteKind]
    current: Optional[VoteKind]
    steps: List[str] = field(default_factory=list)

    @property
    def toggled_off(self) -> bool:
        return self.previous is not None and self.current is None

    @property
    def switched(self) -> bool:
        return (
            self.previous is not None
            and self.current is not None
            and self.previous != self.current
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "reportId": self.report_id,
            "userId": self.user_id,
            "previous": self.previous.value if self.previous else None,
            "current": self.current.value if self.current else None,
            "steps": list(self.steps),
        }


class _WriteSequence:
    """
    Runs dependent writes in order and records how far it got.

    A failure on the first write leaves no state behind and is re-raised as
    is; a failure on a later write becomes a PartialWriteError.
    """

    def __init__(self, action: str):
        self.action = action
        self.completed: List[str] = []

    async def run(self, step: str, awaitable) -> None:
        try:
            await awaitable
        except GraftWatchError as e:
            if not self.completed:
                raise
            logger.error(
                f"{self.action}: step '{step}' failed after {self.completed}; "
                f"tally may have drifted ({e})"
            )
            raise PartialWriteError(self.action, list(self.completed), step, e) from e
        self.completed.append(step)


def parse_vote_kind(kind: Union[str, VoteKind]) -> VoteKind:
    try:
        return VoteKind(kind)
    except ValueError:
        raise ReportValidationError([f"Unknown vote kind: {kind}"])


class VoteConsistencyEngine:
    """
    Casts, switches and withdraws credibility votes.

    Every client runs its own engine against the shared store. The current
    vote is always read from the store right before acting, never taken
    from a value cached by the view, so a second tab cannot trigger a wrong
    toggle from stale state.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def current_vote(self, report_id: str, user_id: str) -> Optional[VoteKind]:
        """The user's vote on the report according to the store."""
        snapshot = await self.store.get(COLLECTION_VOTES, vote_id(report_id, user_id))
        if snapshot is None:
            return None
        return Vote.from_snapshot(snapshot).kind

    async def cast_vote(
        self,
        report_id: str,
        user: Optional[CurrentUser],
        kind: Union[str, VoteKind]
    ) -> VoteOutcome:
        """
        Record the user's vote and keep ``report.votes`` accurate.

        Casting the kind the user already holds withdraws the vote.

        Raises:
            PermissionDeniedError: anonymous or disabled voter
            NotFoundError: report does not exist
            TransientStoreError: the first write failed, nothing changed
            PartialWriteError: a later write failed, earlier ones remain
        """
        voter = require_user(user)
        new_kind = parse_vote_kind(kind)

        if await self.store.get(COLLECTION_REPORTS, report_id) is None:
            raise NotFoundError(f"Report {report_id} not found")

        previous = await self.current_vote(report_id, voter.uid)
        record_id = vote_id(report_id, voter.uid)
        sequence = _WriteSequence(f"vote {new_kind.value} on {report_id}")

        if previous == new_kind:
            await sequence.run(
                "delete_vote",
                self.store.delete(COLLECTION_VOTES, record_id),
            )
            await sequence.run(
                f"decrement_{new_kind.value}",
                self.store.increment(COLLECTION_REPORTS, report_id, f"votes.{new_kind.value}", -1),
            )
            current = None
        else:
            if previous is not None:
                await sequence.run(
                    f"decrement_{previous.value}",
                    self.store.increment(COLLECTION_REPORTS, report_id, f"votes.{previous.value}", -1),
                )
            await sequence.run(
                "write_vote",
                self.store.set(
                    COLLECTION_VOTES,
                    record_id,
                    Vote(report_id, voter.uid, new_kind).to_dict(),
                ),
            )
            await sequence.run(
                f"increment_{new_kind.value}",
                self.store.increment(COLLECTION_REPORTS, report_id, f"votes.{new_kind.value}", 1),
            )
            current = new_kind

        logger.info(
            f"Vote on {report_id} by {voter.uid}: "
            f"{previous.value if previous else None} -> {current.value if current else None}"
        )
        return VoteOutcome(report_id, voter.uid, previous, current, sequence.completed)

    async def remove_vote(self, report_id: str, user: Optional[CurrentUser]) -> VoteOutcome:
        """Withdraw the user's vote, whatever its kind."""
        voter = require_user(user)
        previous = await self.current_vote(report_id, voter.uid)
        if previous is None:
            return VoteOutcome(report_id, voter.uid, None, None)
        return await self.cast_vote(report_id, voter, previous)

    async def count_vote_records(self, report_id: str) -> Dict[str, int]:
        """Tally computed from the individual vote records."""
        counts = {kind: 0 for kind in VOTE_KINDS}
        for snapshot in await self.store.query(Query(COLLECTION_VOTES).where("reportId", report_id)):
            kind = snapshot.get("type")
            if kind in counts:
                counts[kind] += 1
        return counts

    async def tally_drift(self, report_id: str) -> Dict[str, int]:
        """
        Difference between the stored tally and the vote records.

        All zeros means the report is consistent.
        """
        snapshot = await self.store.get(COLLECTION_REPORTS, report_id)
        if snapshot is None:
            raise NotFoundError(f"Report {report_id} not found")
        tally = Report.from_snapshot(snapshot).votes
        counts = await self.count_vote_records(report_id)
        return {kind: tally.get(kind, 0) - counts[kind] for kind in VOTE_KINDS}

    async def recount(self, report_id: str, user: Optional[CurrentUser]) -> Dict[str, int]:
        """
        Overwrite the tally with the count of vote records.

        Admin-triggered repair for drift left by partial failures. It is a
        plain overwrite, so votes cast while it runs can be lost from the
        tally; run it when the report is quiet.
        """
        require_admin(user)
        if await self.store.get(COLLECTION_REPORTS, report_id) is None:
            raise NotFoundError(f"Report {report_id} not found")

        counts = await self.count_vote_records(report_id)
        await self.store.update(
            COLLECTION_REPORTS,
            report_id,
            {f"votes.{kind}": count for kind, count in counts.items()},
        )
        logger.warning(f"Tally of {report_id} recounted to {counts}")
        return counts
