"""
GraftWatch - Error taxonomy

Every failure the engine surfaces to a caller is one of these. None of them
is retried automatically; the user decides whether to repeat the action.
"""

from typing import List, Optional


class GraftWatchError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PermissionDeniedError(GraftWatchError):
    """The actor lacks the role or ownership the action requires."""


class NotFoundError(GraftWatchError):
    """The addressed document does not exist (anymore)."""


class TransientStoreError(GraftWatchError):
    """A store read, write or subscription failed for connectivity reasons."""


class ReportValidationError(GraftWatchError):
    """Input rejected before any write was issued."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class PartialWriteError(GraftWatchError):
    """
    A multi-step action failed after some of its writes landed.

    The completed writes are not rolled back, so the tally may drift from
    the vote records until an explicit recount.
    """

    def __init__(
        self,
        action: str,
        completed_steps: List[str],
        failed_step: str,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            f"{action} failed at '{failed_step}' after {completed_steps or 'no steps'}"
        )
        self.action = action
        self.completed_steps = completed_steps
        self.failed_step = failed_step
        self.cause = cause
