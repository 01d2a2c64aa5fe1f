"""Domain errors raised by the scheduling services.

The HTTP layer maps these to status codes in ``planner.main``:
validation -> 400, conflict -> 409, not found -> 404.
"""

from typing import Any, Optional


class PlannerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(PlannerError):
    """Malformed input, e.g. an interval whose end is not after its start."""

    status_code = 400


class NotFoundError(PlannerError):
    """A referenced time block, task, channel, user or integration does not exist."""

    status_code = 404


class ConflictError(PlannerError):
    """A candidate interval overlaps an active block, or no slot is free.

    Exactly one of ``conflict`` (the colliding block) or ``window_exhausted``
    describes the cause.
    """

    status_code = 409
    retryable = False

    def __init__(
        self,
        message: str,
        conflict: Optional[Any] = None,
        window_exhausted: bool = False,
        details: Optional[Any] = None,
    ):
        super().__init__(message, details)
        self.conflict = conflict
        self.window_exhausted = window_exhausted


class IntegrityRace(ConflictError):
    """Two writes passed the conflict pre-check and the store rejected one of them."""

    retryable = True
