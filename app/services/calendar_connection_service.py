import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import create_connect_state
from app.models.calendar_credential import CalendarCredential, CalendarStatus
from app.services.credential_service import delete_credential, get_credential, upsert_credential
from app.services.google_calendar_client import GoogleCalendarClient

logger = logging.getLogger(__name__)


def build_connect_url(client: GoogleCalendarClient, account_id: int) -> str:
    return client.authorization_url(state=create_connect_state(account_id))


async def complete_connection(
    session: AsyncSession,
    client: GoogleCalendarClient,
    account_id: int,
    code: str,
    now: datetime | None = None,
) -> CalendarCredential:
    """Exchange the consent code and store the account's calendar credential.

    Raises GoogleApiError when the exchange fails and ValueError when Google
    returns no refresh token for an account that has none stored.
    """
    grant = await client.exchange_code(code)
    now = now or datetime.now(UTC)
    credential = await upsert_credential(
        session,
        account_id,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token,
        expires_at=now + timedelta(seconds=grant.expires_in),
    )
    logger.info("Google Calendar connected for account %s", account_id)
    return credential


async def disconnect(session: AsyncSession, account_id: int) -> bool:
    removed = await delete_credential(session, account_id)
    if removed:
        logger.info("Google Calendar disconnected for account %s", account_id)
    return removed


async def get_status(session: AsyncSession, account_id: int) -> CalendarStatus:
    credential = await get_credential(session, account_id)
    if credential is None:
        return CalendarStatus(connected=False)
    return CalendarStatus(connected=True, token_expires_at=credential.token_expires_at)
