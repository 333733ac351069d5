"""
Domain errors raised by the reservation core.

InvalidIntent and SeatUnavailable are caught by the coordinator and handed
back to callers as typed rejections. The remaining errors escape the
coordinator and are mapped to 5xx responses by the API layer.
"""

from typing import Optional


class ReservationError(Exception):
    """Base class for every reservation-core error."""

    reason: str = "reservation_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidIntent(ReservationError):
    """The reservation intent is malformed or points at nothing bookable."""

    reason = "invalid_intent"


class SeatUnavailable(ReservationError):
    """The seat was taken by someone else or the resource is sold out."""

    reason = "seat_unavailable"


class ReferenceExhausted(ReservationError):
    """Every generated booking reference collided with an existing one."""

    reason = "reference_exhausted"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique booking reference after {attempts} attempts")


class PersistenceUnavailable(ReservationError):
    """
    The storage boundary failed. No partial claim survives, so the whole
    reserve call is safe to retry.
    """

    reason = "persistence_unavailable"


class PartialCommitFailure(ReservationError):
    """
    A seat claim succeeded but the follow-up write failed and the
    compensating release failed as well. Needs manual reconciliation.
    """

    reason = "partial_commit_failure"

    def __init__(self, message: str, unit_id: int, hold_token: Optional[str] = None):
        self.unit_id = unit_id
        self.hold_token = hold_token
        super().__init__(message)
