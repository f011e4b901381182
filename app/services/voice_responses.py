"""Spoken replies for the voice assistant.

Every outcome of an availability check or a booking becomes one polite,
actionable sentence that the assistant reads out as is.
"""
from app.services.availability_service import AvailabilityResult
from app.services.calendar_errors import (
    BookingValidationError,
    CalendarError,
    ErrorKind,
    ValidationReason,
)

CALLBACK_OFFER = "Let me take your information and have someone call you back"

_FIELD_WORDS = {
    "date": "the date you'd like",
    "time": "the time you'd like",
    "duration": "how long the appointment should be",
    "title": "the reason for your visit",
    "caller_name": "your full name",
    "caller_number": "your phone number",
}

_AVAILABILITY_ERRORS = {
    ErrorKind.NOT_CONNECTED: (
        "I'm sorry, but your calendar is not connected. Please connect your Google Calendar "
        "first, and then I'll be able to check availability for you."
    ),
    ErrorKind.REFRESH_FAILED: (
        "I'm sorry, but I can't reach the calendar because its connection needs to be renewed. "
        f"{CALLBACK_OFFER} to schedule your appointment."
    ),
    ErrorKind.PROVIDER_ERROR: (
        "I'm having trouble accessing the calendar right now. Please try again in a moment, "
        "or I can take your information and have someone call you back."
    ),
}

_BOOKING_ERRORS = {
    ErrorKind.NOT_CONNECTED: (
        "I'm sorry, but the calendar system is not connected. "
        f"{CALLBACK_OFFER} to schedule your appointment."
    ),
    ErrorKind.REFRESH_FAILED: (
        "I'm sorry, but I can't reach the calendar because its connection needs to be renewed. "
        f"{CALLBACK_OFFER} to schedule your appointment."
    ),
    ErrorKind.CONFLICT: (
        "I'm sorry, but that time slot just became unavailable. "
        "Let me check for other available times for you."
    ),
    ErrorKind.PROVIDER_ERROR: (
        "I had trouble creating the appointment in the calendar. "
        f"{CALLBACK_OFFER} to confirm the booking."
    ),
    ErrorKind.PERSISTENCE_ERROR: (
        "I had trouble saving the appointment details. "
        f"{CALLBACK_OFFER} to confirm the booking."
    ),
}

AVAILABILITY_FALLBACK = (
    "I'm having trouble checking the calendar right now. "
    f"{CALLBACK_OFFER} to schedule your appointment."
)
BOOKING_FALLBACK = (
    "I encountered an issue while booking your appointment. Let me take your contact "
    "information and have someone call you back to complete the scheduling."
)
UNKNOWN_ACCOUNT = (
    "I'm sorry, but I couldn't find the calendar for this office. "
    f"{CALLBACK_OFFER} to schedule your appointment."
)
UNKNOWN_FUNCTION = "I don't recognize that function. Please try again."
FORWARDING_FALLBACK = (
    "I had trouble reaching the calendar. Please try again or contact the office directly."
)


def _join_words(words: list[str]) -> str:
    if len(words) == 1:
        return words[0]
    return f"{', '.join(words[:-1])} and {words[-1]}"


def availability_reply(result: AvailabilityResult) -> str:
    if not result.slots:
        return (
            "I don't see any available appointment slots in the next "
            f"{result.horizon_days} days. Would you like me to take your contact information "
            "and have someone call you back to schedule an appointment?"
        )
    options = "\n".join(
        f"{index}. {slot.formatted_date} at {slot.formatted_time}"
        for index, slot in enumerate(result.slots, start=1)
    )
    return (
        "I have several appointment times available. Here are the next few options:"
        f"\n\n{options}\n\nWhich of these times would work best for you?"
    )


def availability_error_reply(error: CalendarError) -> str:
    return _AVAILABILITY_ERRORS.get(error.kind, AVAILABILITY_FALLBACK)


def validation_reply(error: BookingValidationError) -> str:
    if error.reason is ValidationReason.MISSING_FIELDS:
        words = [_FIELD_WORDS.get(name, name) for name in error.fields]
        return (
            "I need a few more details to complete your booking. "
            f"Could you please tell me {_join_words(words)}?"
        )
    if error.reason is ValidationReason.INVALID_PHONE:
        return (
            "I need a valid phone number to complete your booking. "
            "Could you please provide your phone number again?"
        )
    if error.reason is ValidationReason.PAST_TIME:
        return (
            "I can only book appointments for future dates and times. "
            "Could you please choose a different time from the available options?"
        )
    return (
        "I didn't quite catch the date and time correctly. "
        "Could you please repeat when you'd like to schedule your appointment?"
    )


def booking_error_reply(error: CalendarError) -> str:
    if isinstance(error, BookingValidationError):
        return validation_reply(error)
    return _BOOKING_ERRORS.get(error.kind, BOOKING_FALLBACK)