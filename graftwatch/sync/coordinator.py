"""
GraftWatch - Sync Coordinator
Owns the live views a client session has open.

Each screen of the client maps to one view. The coordinator opens it on the
shared store, enforces who may open it, and closes everything on sign-out.
Views never write; every mutation goes through the engines.
"""

import logging
from typing import Dict, List, Optional

from graftwatch.auth.identity import CurrentUser, require_admin, require_user
from graftwatch.store.base import DocumentStore
from graftwatch.sync.views import (
    AdminCommentsView,
    AdminReportsView,
    AdminUsersView,
    CommentThreadView,
    LiveView,
    MapView,
    OwnReportsView,
    PublicFeedView,
    ReportDetailView,
)

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """
    Registry of open live views for one session.

    Args:
        store: Store shared with the engines issuing writes
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        self._views: Dict[int, LiveView] = {}

    async def _open(self, view: LiveView) -> LiveView:
        await view.open(self.store)
        self._views[id(view)] = view
        return view

    def close(self, view: LiveView) -> None:
        view.close()
        self._views.pop(id(view), None)

    def close_all(self) -> None:
        """Close every view (sign-out or teardown)."""
        for view in list(self._views.values()):
            view.close()
        count = len(self._views)
        self._views.clear()
        if count:
            logger.info(f"Closed {count} live views")

    @property
    def open_views(self) -> List[LiveView]:
        return list(self._views.values())

    # -------------------------------------------------------------------------
    # Public screens
    # -------------------------------------------------------------------------

    async def open_feed(self, corruption_type: Optional[str] = None) -> PublicFeedView:
        """Approved reports feed; filters are set on the returned view."""
        return await self._open(PublicFeedView(corruption_type))

    async def open_map(self) -> MapView:
        return await self._open(MapView())

    async def open_comment_thread(self, report_id: str) -> CommentThreadView:
        return await self._open(CommentThreadView(report_id))

    async def open_report_detail(
        self,
        report_id: str,
        user: Optional[CurrentUser] = None
    ) -> ReportDetailView:
        user_id = user.uid if user is not None else None
        return await self._open(ReportDetailView(report_id, user_id))

    # -------------------------------------------------------------------------
    # Signed-in screens
    # -------------------------------------------------------------------------

    async def open_own_reports(self, user: Optional[CurrentUser]) -> OwnReportsView:
        """The author's own reports, whatever their status."""
        user = require_user(user)
        return await self._open(OwnReportsView(user.uid))

    async def open_admin_reports(self, user: Optional[CurrentUser]) -> AdminReportsView:
        require_admin(user)
        return await self._open(AdminReportsView())

    async def open_admin_users(self, user: Optional[CurrentUser]) -> AdminUsersView:
        require_admin(user)
        return await self._open(AdminUsersView())

    async def open_admin_comments(self, user: Optional[CurrentUser]) -> AdminCommentsView:
        require_admin(user)
        return await self._open(AdminCommentsView())
