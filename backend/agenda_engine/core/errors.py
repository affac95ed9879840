"""Domain errors raised by the scheduling services."""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for business-rule violations reported to callers."""

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(SchedulingError):
    """Malformed input such as inverted time ranges or non-positive capacity."""


class NotFoundError(SchedulingError):
    """Unknown agenda, slot, reservation or waitlist entry."""


class ForbiddenError(SchedulingError):
    """Actor lacks rights over the target resource."""


class ConflictError(SchedulingError):
    """The request conflicts with current state."""


class SlotBusyError(ConflictError):
    """The slot boundary could not be acquired; the caller may try again."""


class ClosedError(ConflictError):
    """Booking attempted against a cancelled slot."""


class DuplicateBookingError(ConflictError):
    """Party already holds an active reservation or waitlist entry on the slot."""


class UnavailableError(SchedulingError):
    """Persistence layer fault; the caller is responsible for retrying."""


__all__ = [
    "ClosedError",
    "ConflictError",
    "DuplicateBookingError",
    "ForbiddenError",
    "NotFoundError",
    "SchedulingError",
    "SlotBusyError",
    "UnavailableError",
    "ValidationError",
]
