import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_calendar_client, get_current_account, get_session
from app.api.schemas.appointment import (
    AvailabilityResponse,
    BookedAppointment,
    BookingRequestBody,
    BookingResponse,
    CalendarErrorDetail,
    ConnectUrlResponse,
    SlotInfo,
)
from app.core.config import settings
from app.core.security import decode_connect_state
from app.models.account import Account
from app.models.appointment import BookingRequest
from app.models.calendar_credential import CalendarStatus
from app.services.appointment_service import BookingResult, book_appointment
from app.services.availability_service import AvailableSlot, compute_availability
from app.services.calendar_connection_service import (
    build_connect_url,
    complete_connection,
    disconnect,
    get_status,
)
from app.services.calendar_errors import CalendarError, ErrorKind
from app.services.google_calendar_client import GoogleApiError, GoogleCalendarClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/calendar", tags=["calendar"])

_ERROR_STATUS = {
    ErrorKind.NOT_CONNECTED: status.HTTP_409_CONFLICT,
    ErrorKind.REFRESH_FAILED: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PROVIDER_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.PERSISTENCE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _http_error(e: CalendarError) -> HTTPException:
    return HTTPException(
        status_code=_ERROR_STATUS[e.kind],
        detail=CalendarErrorDetail(error=e.kind.value, message=e.message).model_dump(),
    )


def _slot_info(slot: AvailableSlot) -> SlotInfo:
    return SlotInfo(
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        day_of_week=slot.day_of_week,
        formatted_date=slot.formatted_date,
        formatted_time=slot.formatted_time,
        start=slot.start,
        end=slot.end,
    )


def _booked(result: BookingResult) -> BookedAppointment:
    a = result.appointment
    return BookedAppointment(
        id=int(a.id),
        event_id=a.event_id,
        caller_name=a.caller_name,
        caller_number=a.caller_number,
        start_time=result.start,
        end_time=result.end,
        formatted_date=result.formatted_date,
        formatted_time=result.formatted_time,
        calendar_link=result.calendar_link,
        status=a.status,
    )


@router.get("/availability", response_model=AvailabilityResponse)
async def availability(
    days: int | None = Query(None, ge=1, le=60),
    session: AsyncSession = Depends(get_session),
    client: GoogleCalendarClient = Depends(get_calendar_client),
    current_account: Account = Depends(get_current_account),
) -> AvailabilityResponse:
    """Next bookable one-hour slots on the account's calendar (first few plus the total)."""
    try:
        result = await compute_availability(session, client, current_account.id, horizon_days=days)
    except CalendarError as e:
        raise _http_error(e) from e
    message = (
        "Available time slots found"
        if result.slots
        else f"No available time slots in the next {result.horizon_days} days"
    )
    return AvailabilityResponse(
        available_slots=[_slot_info(s) for s in result.slots],
        total_available=result.total_available,
        message=message,
    )


@router.post("/book", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book(
    body: BookingRequestBody,
    session: AsyncSession = Depends(get_session),
    client: GoogleCalendarClient = Depends(get_calendar_client),
    current_account: Account = Depends(get_current_account),
) -> BookingResponse:
    request = BookingRequest(**body.model_dump())
    try:
        result = await book_appointment(session, client, current_account.id, request)
    except CalendarError as e:
        raise _http_error(e) from e
    return BookingResponse(appointment=_booked(result), message=result.message)


@router.get("/status", response_model=CalendarStatus)
async def calendar_status(
    session: AsyncSession = Depends(get_session),
    current_account: Account = Depends(get_current_account),
) -> CalendarStatus:
    return await get_status(session, current_account.id)


@router.get("/connect", response_model=ConnectUrlResponse)
async def connect(
    client: GoogleCalendarClient = Depends(get_calendar_client),
    current_account: Account = Depends(get_current_account),
) -> ConnectUrlResponse:
    if not settings.google_oauth_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google OAuth is not configured",
        )
    return ConnectUrlResponse(authorization_url=build_connect_url(client, current_account.id))


@router.get("/oauth/callback", response_model=CalendarStatus)
async def oauth_callback(
    code: str = Query(...),
    state: str = Query(...),
    session: AsyncSession = Depends(get_session),
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> CalendarStatus:
    account_id = decode_connect_state(state)
    if account_id is None or await session.get(Account, account_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state",
        )
    try:
        credential = await complete_connection(session, client, account_id, code)
    except GoogleApiError as e:
        logger.warning("Google code exchange failed for account %s: %s", account_id, e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to exchange code with Google. Please try connecting again.",
        ) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return CalendarStatus(connected=True, token_expires_at=credential.token_expires_at)


@router.delete("/connection", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_calendar(
    session: AsyncSession = Depends(get_session),
    current_account: Account = Depends(get_current_account),
) -> Response:
    await disconnect(session, current_account.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
