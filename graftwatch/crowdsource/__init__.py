"""
GraftWatch - Crowdsource Module
Citizen corruption reports, credibility votes, discussion and moderation.
"""

from graftwatch.crowdsource.models import (
    Report,
    ReportStatus,
    Location,
    Vote,
    VoteKind,
    Comment,
)
from graftwatch.crowdsource.validation import (
    ReportValidator,
    ValidationResult,
    validate_report,
)
from graftwatch.crowdsource.report_handler import ReportHandler
from graftwatch.crowdsource.votes import VoteConsistencyEngine, VoteOutcome
from graftwatch.crowdsource.comments import (
    CommentService,
    CommentThread,
    build_thread,
)
from graftwatch.crowdsource.moderation import ModerationStateMachine, Transition
from graftwatch.crowdsource.proximity import filter_nearby, filter_by_type

__all__ = [
    # Models
    "Report",
    "ReportStatus",
    "Location",
    "Vote",
    "VoteKind",
    "Comment",
    # Validation
    "ReportValidator",
    "ValidationResult",
    "validate_report",
    # Engines
    "ReportHandler",
    "VoteConsistencyEngine",
    "VoteOutcome",
    "CommentService",
    "CommentThread",
    "build_thread",
    "ModerationStateMachine",
    "Transition",
    # Proximity
    "filter_nearby",
    "filter_by_type",
]
