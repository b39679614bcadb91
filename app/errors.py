"""Error taxonomy for time tracking operations."""


class TimeTrackingError(Exception):
    """Base class for errors surfaced to API callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TimeTrackingError, ValueError):
    """Missing or malformed input (bad field, bad duration, end before start)."""


class NotFoundError(TimeTrackingError, LookupError):
    """Unknown entry, unknown entity, or no running timer to stop."""


class ConflictError(TimeTrackingError):
    """A concurrent mutation was detected by the database."""
