from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.calendar_credential import CalendarCredential


def _utc_naive() -> datetime:
    """Naive UTC datetime for DB columns that are TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


def _naive_utc(dt: datetime) -> datetime:
    """Ensure datetime is naive UTC for DB (strip or convert to UTC and strip)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.replace(tzinfo=None)


async def get_credential(session: AsyncSession, account_id: int) -> CalendarCredential | None:
    result = await session.execute(
        select(CalendarCredential)
        .where(CalendarCredential.account_id == account_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_credential(
    session: AsyncSession,
    account_id: int,
    access_token: str,
    refresh_token: str | None,
    expires_at: datetime,
) -> CalendarCredential:
    """Store tokens from an OAuth consent. A repeat consent overwrites in place.

    Google only returns a refresh token on some consents; when it is absent the
    stored one is kept. Raises ValueError when there is none to keep.
    """
    credential = await get_credential(session, account_id)
    if credential is None:
        if not refresh_token:
            raise ValueError("Google did not return a refresh token for a new connection")
        credential = CalendarCredential(
            account_id=account_id,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=_naive_utc(expires_at),
        )
    else:
        credential.access_token = access_token
        if refresh_token:
            credential.refresh_token = refresh_token
        credential.token_expires_at = _naive_utc(expires_at)
        credential.updated_at = _utc_naive()
    session.add(credential)
    await session.flush()
    await session.refresh(credential)
    return credential


async def update_access_token(
    session: AsyncSession,
    account_id: int,
    observed_expires_at: datetime,
    access_token: str,
    expires_at: datetime,
) -> bool:
    """Overwrite the access token and expiry if nobody refreshed since we read the row.

    Returns False when the row's expiry no longer matches `observed_expires_at`
    (a concurrent refresh won). Commits so the new token survives a later
    rollback of the surrounding request.
    """
    result = await session.execute(
        update(CalendarCredential)
        .where(
            CalendarCredential.account_id == account_id,
            CalendarCredential.token_expires_at == _naive_utc(observed_expires_at),
        )
        .values(
            access_token=access_token,
            token_expires_at=_naive_utc(expires_at),
            updated_at=_utc_naive(),
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return (result.rowcount or 0) > 0


async def delete_credential(session: AsyncSession, account_id: int) -> bool:
    result = await session.execute(
        delete(CalendarCredential).where(CalendarCredential.account_id == account_id)
    )
    await session.flush()
    return (result.rowcount or 0) > 0
