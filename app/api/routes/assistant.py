"""Voice assistant entry points.

`/assistant/functions` answers the assistant's function calls with a single
sentence to speak. `/assistant/webhook` takes the platform's webhook envelope
and forwards embedded function calls to `/assistant/functions` over HTTP.
"""
import logging
from typing import Any

import httpx
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_calendar_client,
    get_forwarding_client,
    get_session,
    verify_assistant_secret,
)
from app.api.schemas.assistant import FunctionCallRequest, FunctionCallResult, WebhookEvent
from app.core.config import settings
from app.models.appointment import BookingRequest
from app.services import voice_responses
from app.services.appointment_service import book_appointment
from app.services.availability_service import compute_availability
from app.services.calendar_errors import BookingValidationError, CalendarError, ValidationReason
from app.services.google_calendar_client import GoogleCalendarClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/assistant", tags=["assistant"])

GET_AVAILABILITY = "get_availability"
BOOK_APPOINTMENT = "book_appointment"
KNOWN_FUNCTIONS = (GET_AVAILABILITY, BOOK_APPOINTMENT)


def _account_id(parameters: dict[str, Any]) -> int | None:
    try:
        return int(parameters.get("user_id"))
    except (TypeError, ValueError):
        return None


def _parameter_error(error: ValidationError) -> BookingValidationError:
    """A rejected phone number is reported as such; anything else as an unreadable date or time."""
    fields = {str(err["loc"][0]) for err in error.errors() if err.get("loc")}
    if "caller_number" in fields:
        return BookingValidationError(reason=ValidationReason.INVALID_PHONE, fields=("caller_number",))
    return BookingValidationError(reason=ValidationReason.INVALID_DATETIME, fields=tuple(sorted(fields)))


async def _get_availability(
    session: AsyncSession, client: GoogleCalendarClient, parameters: dict[str, Any]
) -> str:
    account_id = _account_id(parameters)
    if account_id is None:
        return voice_responses.UNKNOWN_ACCOUNT
    try:
        result = await compute_availability(session, client, account_id)
    except CalendarError as e:
        return voice_responses.availability_error_reply(e)
    except Exception:
        logger.exception("Availability check failed for account %s", account_id)
        return voice_responses.AVAILABILITY_FALLBACK
    return voice_responses.availability_reply(result)


async def _book_appointment(
    session: AsyncSession, client: GoogleCalendarClient, parameters: dict[str, Any]
) -> str:
    account_id = _account_id(parameters)
    if account_id is None:
        return voice_responses.UNKNOWN_ACCOUNT
    try:
        request = BookingRequest.model_validate(parameters)
    except ValidationError as e:
        logger.info("Unusable booking parameters for account %s: %s", account_id, e)
        return voice_responses.validation_reply(_parameter_error(e))
    try:
        result = await book_appointment(session, client, account_id, request)
    except CalendarError as e:
        return voice_responses.booking_error_reply(e)
    except Exception:
        logger.exception("Booking failed for account %s", account_id)
        return voice_responses.BOOKING_FALLBACK
    return result.message


@router.post(
    "/functions",
    response_model=FunctionCallResult,
    dependencies=[Depends(verify_assistant_secret)],
)
async def call_function(
    body: FunctionCallRequest,
    session: AsyncSession = Depends(get_session),
    client: GoogleCalendarClient = Depends(get_calendar_client),
):
    if body.function_name == GET_AVAILABILITY:
        return FunctionCallResult(result=await _get_availability(session, client, body.parameters))
    if body.function_name == BOOK_APPOINTMENT:
        return FunctionCallResult(result=await _book_appointment(session, client, body.parameters))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "unknown_function", "message": voice_responses.UNKNOWN_FUNCTION},
    )


@router.post("/webhook")
async def webhook(
    body: WebhookEvent,
    forward_client: httpx.AsyncClient = Depends(get_forwarding_client),
) -> dict:
    event = body.resolve()
    call = event.function_call
    if event.type != "function-call" or call is None or call.name not in KNOWN_FUNCTIONS:
        return {"success": True}

    headers = {}
    if settings.assistant_shared_secret:
        headers["X-Assistant-Secret"] = settings.assistant_shared_secret
    try:
        resp = await forward_client.post(
            settings.assistant_functions_url,
            json={"function_name": call.name, "parameters": call.parameters},
            headers=headers,
        )
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Forwarding %s to the assistant function endpoint failed: %s", call.name, e)
        return {"result": voice_responses.FORWARDING_FALLBACK}
    result = data.get("result") if isinstance(data, dict) else None
    return {"result": result or voice_responses.FORWARDING_FALLBACK}
