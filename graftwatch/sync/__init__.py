"""
GraftWatch - Sync Module
Live views kept current by store subscriptions.
"""

from graftwatch.sync.coordinator import SyncCoordinator
from graftwatch.sync.views import (
    LiveView,
    FeedEntry,
    PublicFeedView,
    MapView,
    OwnReportsView,
    CommentThreadView,
    ReportDetail,
    ReportDetailView,
    AdminReportsView,
    AdminUsersView,
    AdminCommentsView,
)

__all__ = [
    "SyncCoordinator",
    "LiveView",
    "FeedEntry",
    "PublicFeedView",
    "MapView",
    "OwnReportsView",
    "CommentThreadView",
    "ReportDetail",
    "ReportDetailView",
    "AdminReportsView",
    "AdminUsersView",
    "AdminCommentsView",
]
