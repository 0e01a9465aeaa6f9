"""
Domain-specific exception hierarchy for the booking engine.
"""


class SlotbookError(Exception):
    """Base class for all application-level errors."""


class InvalidInput(SlotbookError):
    """Raised when a request is malformed or misses required fields."""


class NotFound(SlotbookError):
    """Raised when a referenced seller, buyer or appointment does not exist."""


class Unauthorized(SlotbookError):
    """Raised when the caller has no valid session."""


class Forbidden(SlotbookError):
    """Raised when the caller's role does not allow the operation."""


class SlotUnavailable(SlotbookError):
    """Raised when a booking overlaps an existing scheduled appointment."""


class InvalidTransition(SlotbookError):
    """Raised when an appointment status change would move backwards."""


class PersistenceError(SlotbookError):
    """Raised when the durable appointment store cannot be written."""


class CalendarError(SlotbookError):
    """Base class for failures talking to an external calendar."""


class CalendarUnavailable(CalendarError):
    """Raised when busy intervals cannot be read from an external calendar."""


class CalendarWriteError(CalendarError):
    """Raised when an event cannot be created on an external calendar."""


class AuthenticationError(CalendarError):
    """Raised when a lent credential is missing or cannot be refreshed."""
