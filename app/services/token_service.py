import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings
from app.services.calendar_errors import RefreshFailedError
from app.services.credential_service import get_credential, update_access_token
from app.services.google_calendar_client import GoogleApiError, GoogleCalendarClient

logger = logging.getLogger(__name__)


async def get_valid_token(
    session: AsyncSession,
    client: GoogleCalendarClient,
    account_id: int,
    now: datetime | None = None,
    config: Settings = settings,
) -> str | None:
    """Return a usable Google access token, or None when no calendar is connected.

    A stored token is returned as is while its expiry is more than the refresh
    buffer away. Otherwise it is refreshed once; on failure RefreshFailedError
    is raised and the stored credential is left untouched.
    """
    credential = await get_credential(session, account_id)
    if credential is None:
        return None

    now = now or datetime.now(UTC)
    expires_at = credential.token_expires_at.replace(tzinfo=UTC)
    buffer = timedelta(minutes=config.token_refresh_buffer_minutes)
    if expires_at - now > buffer:
        return credential.access_token

    logger.info("Refreshing Google access token for account %s", account_id)
    try:
        grant = await client.refresh_access_token(credential.refresh_token)
    except GoogleApiError as e:
        logger.warning("Google token refresh failed for account %s: %s", account_id, e)
        raise RefreshFailedError() from e

    new_expires_at = now + timedelta(seconds=grant.expires_in)
    try:
        updated = await update_access_token(
            session,
            account_id,
            observed_expires_at=expires_at,
            access_token=grant.access_token,
            expires_at=new_expires_at,
        )
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Failed to store refreshed token for account %s", account_id)
        raise RefreshFailedError() from e
    if not updated:
        logger.info(
            "Credential for account %s was refreshed concurrently; keeping the stored one",
            account_id,
        )
    return grant.access_token
