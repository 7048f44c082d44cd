"""
Corruption report handler for crowdsourced data
Receives reports from citizens and lets authors manage their own.
"""

import logging
from typing import Optional, List, Dict, Any

from graftwatch.auth.identity import CurrentUser, require_user
from graftwatch.core.constants import COLLECTION_REPORTS
from graftwatch.core.exceptions import NotFoundError, PermissionDeniedError
from graftwatch.crowdsource.models import Location, Report, ReportStatus, empty_tally
from graftwatch.crowdsource.validation import ReportValidator
from graftwatch.store.base import DocumentStore, Query, SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


class ReportHandler:
    """
    Handles corruption reports from citizens.

    Submissions are validated completely before the single create write, so
    a rejected submission leaves nothing behind.
    """

    def __init__(
        self,
        store: DocumentStore,
        validator: Optional[ReportValidator] = None
    ):
        """
        Initialize report handler.

        Args:
            store: Document store shared with every other client
            validator: Submission validator (default limits from settings)
        """
        self.store = store
        self.validator = validator or ReportValidator()

        logger.info("ReportHandler initialized")

    async def submit_report(
        self,
        user: Optional[CurrentUser],
        description: str,
        corruption_type: str,
        location: Optional[Location],
        evidence_base64: Optional[List[str]] = None,
        evidence_links: Optional[List[str]] = None
    ) -> Report:
        """
        Create a new corruption report in ``pending`` state.

        Args:
            user: Authenticated author
            description: What happened
            corruption_type: One of CORRUPTION_TYPES
            location: Incident location (address may be blank)
            evidence_base64: Inline images as data URLs
            evidence_links: External evidence URLs

        Returns:
            The created Report as stored

        Raises:
            PermissionDeniedError: anonymous or disabled author
            ReportValidationError: any field missing or invalid
        """
        author = require_user(user)
        images = list(evidence_base64 or [])
        links = [link.strip() for link in (evidence_links or []) if link and link.strip()]

        self.validator.validate(
            description, corruption_type, location, images, links
        ).raise_for_errors()

        report_id = await self.store.add(COLLECTION_REPORTS, {
            "userId": author.uid,
            "description": description.strip(),
            "corruptionType": corruption_type,
            "location": location.to_dict(),
            "evidenceBase64": images,
            "evidenceLinks": links,
            "status": ReportStatus.PENDING.value,
            "votes": empty_tally(),
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        })

        logger.info(f"New report created: {report_id} by {author.uid} at ({location.lat}, {location.lng})")

        report = await self.get_report(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} vanished right after creation")
        return report

    async def get_report(self, report_id: str) -> Optional[Report]:
        """Get report by ID."""
        snapshot = await self.store.get(COLLECTION_REPORTS, report_id)
        return Report.from_snapshot(snapshot) if snapshot else None

    async def require_report(self, report_id: str) -> Report:
        report = await self.get_report(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    async def get_own_reports(self, user: Optional[CurrentUser]) -> List[Report]:
        """All of the caller's reports, any status, newest first."""
        author = require_user(user)
        snapshots = await self.store.query(
            Query(COLLECTION_REPORTS)
            .where("userId", author.uid)
            .order("createdAt", descending=True)
        )
        reports = [Report.from_snapshot(s) for s in snapshots]
        reports.sort(key=lambda r: r.created_seconds, reverse=True)
        return reports

    async def delete_own_report(self, report_id: str, user: Optional[CurrentUser]) -> None:
        """
        Delete one of the caller's reports.

        Authors may only delete reports that are not approved. Votes and
        comments on the report are left in place.
        """
        author = require_user(user)
        report = await self.require_report(report_id)

        if report.user_id != author.uid:
            raise PermissionDeniedError("Only the author can delete this report")
        if report.status == ReportStatus.APPROVED:
            raise PermissionDeniedError("Approved reports can only be removed by an administrator")

        await self.store.delete(COLLECTION_REPORTS, report_id)
        logger.info(f"Report {report_id} deleted by its author")

    async def get_statistics(self) -> Dict[str, Any]:
        """Get report statistics."""
        reports = [Report.from_snapshot(s) for s in await self.store.query(Query(COLLECTION_REPORTS))]

        by_status: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        with_images = 0
        with_links = 0

        for report in reports:
            by_status[report.status.value] = by_status.get(report.status.value, 0) + 1
            by_type[report.corruption_type] = by_type.get(report.corruption_type, 0) + 1
            if report.evidence_base64:
                with_images += 1
            if report.evidence_links:
                with_links += 1

        return {
            "total_reports": len(reports),
            "pending_count": by_status.get(ReportStatus.PENDING.value, 0),
            "by_status": by_status,
            "by_type": by_type,
            "with_images": with_images,
            "with_links": with_links,
            "approval_rate": (
                by_status.get(ReportStatus.APPROVED.value, 0) / len(reports) if reports else 0.0
            ),
        }
