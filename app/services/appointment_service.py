import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings
from app.models.account import Account
from app.models.appointment import Appointment, AppointmentStatus, BookingRequest
from app.services.availability_service import has_conflict, resolve_timezone
from app.services.calendar_errors import (
    BookingValidationError,
    ConflictError,
    NotConnectedError,
    PersistenceError,
    ProviderError,
    ValidationReason,
)
from app.services.google_calendar_client import GoogleApiError, GoogleCalendarClient
from app.services.time_format import format_clock, format_full_date
from app.services.token_service import get_valid_token

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
MAX_DURATION_MINUTES = 24 * 60
REQUIRED_FIELDS = ("date", "time", "duration", "title", "caller_name", "caller_number")

# booked -> completed | cancelled; nothing leaves a terminal status
_ALLOWED_TRANSITIONS = {
    AppointmentStatus.BOOKED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
}


class AppointmentTransitionError(Exception):
    """Raised when an appointment cannot move to the requested status."""


@dataclass(frozen=True)
class BookingResult:
    appointment: Appointment
    start: datetime  # aware, clinic timezone
    end: datetime
    formatted_date: str
    formatted_time: str
    calendar_link: str | None
    message: str


def _to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def is_valid_phone(number: str) -> bool:
    return bool(PHONE_PATTERN.match(_PHONE_SEPARATORS.sub("", number)))


def validate_booking_request(
    request: BookingRequest, now: datetime, tz: ZoneInfo
) -> tuple[datetime, datetime]:
    """Check a booking request and return its (start, end) in `tz`.

    Checks run in order and stop at the first failure: required fields, phone
    number, date/time format, start strictly in the future.
    """
    missing = tuple(name for name in REQUIRED_FIELDS if not getattr(request, name))
    if missing:
        raise BookingValidationError(
            f"Missing required fields: {', '.join(missing)}",
            reason=ValidationReason.MISSING_FIELDS,
            fields=missing,
        )
    if not is_valid_phone(request.caller_number):
        raise BookingValidationError(
            "Invalid phone number",
            reason=ValidationReason.INVALID_PHONE,
            fields=("caller_number",),
        )
    try:
        naive_start = datetime.strptime(f"{request.date} {request.time}", "%Y-%m-%d %H:%M")
    except ValueError as e:
        raise BookingValidationError(
            "Date must be YYYY-MM-DD and time HH:MM",
            reason=ValidationReason.INVALID_DATETIME,
            fields=("date", "time"),
        ) from e
    if not 0 < request.duration <= MAX_DURATION_MINUTES:
        raise BookingValidationError(
            f"Duration must be between 1 and {MAX_DURATION_MINUTES} minutes",
            reason=ValidationReason.INVALID_DATETIME,
            fields=("duration",),
        )
    start = naive_start.replace(tzinfo=tz)
    end = start + timedelta(minutes=request.duration)
    if start <= now:
        raise BookingValidationError(
            "Appointments can only be booked for a future date and time",
            reason=ValidationReason.PAST_TIME,
            fields=("date", "time"),
        )
    return start, end


def _event_body(request: BookingRequest, start: datetime, end: datetime, tz: ZoneInfo) -> dict:
    description = request.description or (
        f"Appointment with {request.caller_name}\nPhone: {request.caller_number}"
    )
    return {
        "summary": request.title,
        "description": description,
        "start": {"dateTime": start.isoformat(), "timeZone": tz.key},
        "end": {"dateTime": end.isoformat(), "timeZone": tz.key},
    }


def confirmation_message(title: str, formatted_date: str, formatted_time: str) -> str:
    return (
        f"Perfect! I've booked your {title.lower()} appointment for {formatted_date} "
        f"at {formatted_time}. You should receive a calendar invitation shortly. "
        "Is there anything else I can help you with?"
    )


async def _delete_remote_event(
    client: GoogleCalendarClient, access_token: str, event_id: str, account_id: int
) -> None:
    """Best-effort rollback of a created event; failure is only logged."""
    try:
        await client.delete_event(access_token, event_id)
        logger.info("Deleted calendar event %s after failed save (account %s)", event_id, account_id)
    except GoogleApiError as e:
        logger.error(
            "Failed to clean up calendar event %s for account %s: %s", event_id, account_id, e
        )


async def book_appointment(
    session: AsyncSession,
    client: GoogleCalendarClient,
    account_id: int,
    request: BookingRequest,
    now: datetime | None = None,
    config: Settings = settings,
) -> BookingResult:
    """Create the remote calendar event, then the local Appointment row.

    If the row cannot be saved the remote event is deleted again before
    PersistenceError is raised. Also raises BookingValidationError,
    NotConnectedError, RefreshFailedError, ConflictError and ProviderError.
    """
    now = now or datetime.now(UTC)
    account = await session.get(Account, account_id)
    tz = resolve_timezone(account, config)
    start, end = validate_booking_request(request, now, tz)

    access_token = await get_valid_token(session, client, account_id, now=now, config=config)
    if access_token is None:
        raise NotConnectedError()

    # The slot was only offered; check it again right before writing
    try:
        busy = await client.query_busy(access_token, start, end)
    except GoogleApiError as e:
        logger.warning(
            "Availability re-check failed for account %s, booking anyway: %s", account_id, e
        )
        busy = []
    if has_conflict(start, end, busy):
        raise ConflictError()

    try:
        created = await client.create_event(access_token, _event_body(request, start, end, tz))
    except GoogleApiError as e:
        logger.error("Calendar event creation failed for account %s: %s", account_id, e)
        raise ProviderError("Failed to create calendar event") from e

    appointment = Appointment(
        account_id=account_id,
        caller_name=request.caller_name,
        caller_number=request.caller_number,
        title=request.title,
        event_id=created.event_id,
        calendar_link=created.html_link,
        start_utc=_to_naive_utc(start),
        end_utc=_to_naive_utc(end),
        status=AppointmentStatus.BOOKED.value,
    )
    # Compensate a failed commit only; the primary key is assigned at flush
    try:
        session.add(appointment)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Saving appointment failed for account %s", account_id)
        await _delete_remote_event(client, access_token, created.event_id, account_id)
        raise PersistenceError() from e

    formatted_date = format_full_date(start)
    formatted_time = format_clock(start)
    logger.info(
        "Booked appointment %s (event %s) for account %s at %s",
        appointment.id,
        created.event_id,
        account_id,
        start.isoformat(),
    )
    return BookingResult(
        appointment=appointment,
        start=start,
        end=end,
        formatted_date=formatted_date,
        formatted_time=formatted_time,
        calendar_link=created.html_link,
        message=confirmation_message(request.title, formatted_date, formatted_time),
    )


async def list_appointments_for_account(
    session: AsyncSession, account_id: int, status: AppointmentStatus | None = None
) -> list[Appointment]:
    q = select(Appointment).where(Appointment.account_id == account_id).order_by(Appointment.start_utc)
    if status:
        q = q.where(Appointment.status == status.value)
    result = await session.execute(q)
    return list(result.scalars().all())


async def transition_appointment(
    session: AsyncSession,
    appointment_id: int,
    account_id: int,
    new_status: AppointmentStatus,
) -> Appointment | None:
    """Move a booked appointment to completed or cancelled. None if not found or not owned."""
    result = await session.execute(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.account_id == account_id,
        )
    )
    appointment = result.scalar_one_or_none()
    if not appointment:
        return None
    current = AppointmentStatus(appointment.status)
    if new_status not in _ALLOWED_TRANSITIONS.get(current, set()):
        raise AppointmentTransitionError(
            f"Cannot change appointment from {current.value} to {new_status.value}"
        )
    appointment.status = new_status.value
    appointment.updated_at = _utc_naive_now()
    session.add(appointment)
    await session.flush()
    await session.refresh(appointment)
    return appointment
