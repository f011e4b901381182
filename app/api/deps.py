import hmac
from collections.abc import AsyncGenerator

import httpx
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_session
from app.core.security import decode_access_token
from app.models.account import Account
from app.services.google_calendar_client import GoogleCalendarClient

__all__ = [
    "get_session",
    "get_current_account",
    "get_http_client",
    "get_calendar_client",
    "get_forwarding_client",
    "verify_assistant_secret",
]

security = HTTPBearer(auto_error=False)


async def get_current_account(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Account:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    account_id = decode_access_token(credentials.credentials)
    if not account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        aid = int(account_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    result = await session.execute(select(Account).where(Account.id == aid))
    account = result.scalar_one_or_none()
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


async def get_http_client(request: Request) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Process-wide client created in the app lifespan; a short-lived one otherwise."""
    client = getattr(request.app.state, "http_client", None)
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        yield client


def get_calendar_client(
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> GoogleCalendarClient:
    return GoogleCalendarClient(http_client, settings)


def get_forwarding_client(
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> httpx.AsyncClient:
    """Client the webhook uses to reach the assistant function endpoint."""
    return http_client


def verify_assistant_secret(
    x_assistant_secret: str | None = Header(default=None, alias="X-Assistant-Secret"),
) -> None:
    """Voice platform calls carry a shared secret when one is configured."""
    expected = settings.assistant_shared_secret
    if expected and not hmac.compare_digest(x_assistant_secret or "", expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid assistant secret",
        )
