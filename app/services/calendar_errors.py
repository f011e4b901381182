"""Failure kinds reported by the calendar availability and booking services.

Routers catch ``CalendarError`` and render it for their caller: an HTTP status
plus JSON for the browser API, a spoken sentence for the voice assistant.
"""
from enum import StrEnum


class ErrorKind(StrEnum):
    NOT_CONNECTED = "not_connected"
    REFRESH_FAILED = "refresh_failed"
    PROVIDER_ERROR = "provider_error"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    PERSISTENCE_ERROR = "persistence_error"


class CalendarError(Exception):
    kind: ErrorKind
    default_message = "Calendar request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotConnectedError(CalendarError):
    """No calendar credential on file for the account. Expected, not exceptional."""

    kind = ErrorKind.NOT_CONNECTED
    default_message = "Google Calendar is not connected"


class RefreshFailedError(CalendarError):
    """Credential present but the provider rejected the refresh; reconnect required."""

    kind = ErrorKind.REFRESH_FAILED
    default_message = "Google Calendar access expired; please reconnect the calendar"


class ProviderError(CalendarError):
    kind = ErrorKind.PROVIDER_ERROR
    default_message = "Google Calendar request failed"


class ValidationReason(StrEnum):
    MISSING_FIELDS = "missing_fields"
    INVALID_PHONE = "invalid_phone"
    INVALID_DATETIME = "invalid_datetime"
    PAST_TIME = "past_time"


class BookingValidationError(CalendarError):
    kind = ErrorKind.VALIDATION_ERROR
    default_message = "Invalid booking request"

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: ValidationReason,
        fields: tuple[str, ...] = (),
    ) -> None:
        self.reason = reason
        self.fields = fields
        super().__init__(message)


class ConflictError(CalendarError):
    kind = ErrorKind.CONFLICT
    default_message = "The requested time slot is no longer available"


class PersistenceError(CalendarError):
    """Local write failed after the remote event was created (compensation attempted)."""

    kind = ErrorKind.PERSISTENCE_ERROR
    default_message = "Failed to save the appointment"
