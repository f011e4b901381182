"""Shared fixtures: in-memory database, a fake Google API and an API client.

Google is replaced by ``FakeGoogle`` behind ``httpx.MockTransport`` so every
outbound request is recorded and tests can count network calls exactly.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Callable, Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import parse_qs

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("GOOGLE_CLIENT_ID", "client-id-123.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "client-secret-xyz")
os.environ.setdefault("GOOGLE_REDIRECT_URI", "http://localhost:8000/api/v1/calendar/oauth/callback")

import httpx  # noqa: E402
import pytest  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401 - register tables
from app.core.config import settings  # noqa: E402
from app.models.account import Account  # noqa: E402
from app.models.calendar_credential import CalendarCredential  # noqa: E402
from app.services.google_calendar_client import (  # noqa: E402
    GoogleCalendarClient,
    parse_google_datetime,
    to_rfc3339,
)


# ---------------------------------------------------------------------------
# Fake Google
# ---------------------------------------------------------------------------


class FakeGoogle:
    """Records every request and answers like the Google token/Calendar endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.busy: list[tuple[datetime, datetime]] = []
        self.token_status = 200
        self.freebusy_status = 200
        self.create_status = 200
        self.delete_status = 204
        self.refreshed_access_token = "ya29.refreshed-access-token"
        self.granted_refresh_token: str | None = "1//granted-refresh-token"
        self.expires_in = 3599
        self.event_id = "evt_123"
        self.created_events: list[dict[str, Any]] = []

    @staticmethod
    def kind(request: httpx.Request) -> str:
        if request.url.path.endswith("/token"):
            return "token"
        if request.url.path.endswith("/freeBusy"):
            return "freebusy"
        if request.method == "POST" and request.url.path.endswith("/events"):
            return "create"
        if request.method == "DELETE":
            return "delete"
        return "other"

    def calls(self, kind: str) -> list[httpx.Request]:
        return [r for r in self.requests if self.kind(r) == kind]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        kind = self.kind(request)
        if kind == "token":
            return self._token(request)
        if kind == "freebusy":
            return self._freebusy(request)
        if kind == "create":
            if self.create_status != 200:
                return httpx.Response(self.create_status, json={"error": {"message": "backend error"}})
            body = json.loads(request.content)
            self.created_events.append(body)
            return httpx.Response(
                200,
                json={
                    "id": self.event_id,
                    "htmlLink": f"https://calendar.google.com/event?eid={self.event_id}",
                    **body,
                },
            )
        if kind == "delete":
            return httpx.Response(self.delete_status)
        return httpx.Response(404, json={"error": {"message": "not found"}})

    def _token(self, request: httpx.Request) -> httpx.Response:
        if self.token_status != 200:
            return httpx.Response(
                self.token_status,
                json={"error": "invalid_grant", "error_description": "Token has been revoked."},
            )
        form = parse_qs(request.content.decode())
        payload: dict[str, Any] = {
            "access_token": self.refreshed_access_token,
            "expires_in": self.expires_in,
            "token_type": "Bearer",
        }
        if form.get("grant_type") == ["authorization_code"] and self.granted_refresh_token:
            payload["refresh_token"] = self.granted_refresh_token
        return httpx.Response(200, json=payload)

    def _freebusy(self, request: httpx.Request) -> httpx.Response:
        if self.freebusy_status != 200:
            return httpx.Response(self.freebusy_status, json={"error": {"message": "backend error"}})
        body = json.loads(request.content)
        time_min = parse_google_datetime(body["timeMin"])
        time_max = parse_google_datetime(body["timeMax"])
        busy = [
            {"start": to_rfc3339(start), "end": to_rfc3339(end)}
            for start, end in self.busy
            if start < time_max and end > time_min
        ]
        return httpx.Response(200, json={"calendars": {"primary": {"busy": busy}}})


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
async def http_client(google: FakeGoogle) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(google.handler)) as client:
        yield client


@pytest.fixture
def calendar_client(http_client: httpx.AsyncClient) -> GoogleCalendarClient:
    return GoogleCalendarClient(http_client, settings)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_maker() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
async def session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_maker() as s:
        yield s


async def make_account(session: AsyncSession, email: str = "clinic@example.com") -> Account:
    account = Account(email=email, full_name="Main Street Clinic", timezone="America/New_York")
    session.add(account)
    await session.commit()
    await session.refresh(account)
    return account


@pytest.fixture
async def account(session: AsyncSession) -> Account:
    return await make_account(session)


@pytest.fixture
async def other_account(session: AsyncSession) -> Account:
    return await make_account(session, email="other@example.com")


ConnectFn = Callable[..., Coroutine[Any, Any, CalendarCredential]]


@pytest.fixture
def connect_calendar(session: AsyncSession) -> ConnectFn:
    """Store a credential for an account expiring `expires_in` after `now`."""

    async def _connect(
        account: Account,
        *,
        expires_in: timedelta = timedelta(hours=1),
        now: datetime | None = None,
    ) -> CalendarCredential:
        now = now or datetime.now(UTC)
        credential = CalendarCredential(
            account_id=account.id,
            access_token="ya29.stored-access-token",
            refresh_token="1//stored-refresh-token",
            token_expires_at=now + expires_in,
        )
        session.add(credential)
        await session.commit()
        await session.refresh(credential)
        return credential

    return _connect


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def session_token() -> Callable[[int], str]:
    """Mint a session JWT the way the auth system does; this service only verifies them."""

    def _mint(account_id: int) -> str:
        payload = {
            "sub": str(account_id),
            "exp": datetime.now(UTC) + timedelta(minutes=15),
            "type": "access",
        }
        return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)

    return _mint


@pytest.fixture
def auth_headers(account: Account, session_token: Callable[[int], str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {session_token(account.id)}"}


@pytest.fixture
async def api(
    session_maker: async_sessionmaker[AsyncSession], http_client: httpx.AsyncClient
) -> AsyncIterator[httpx.AsyncClient]:
    from app.api.deps import get_forwarding_client, get_http_client, get_session
    from app.main import app

    async def _get_session() -> AsyncIterator[AsyncSession]:
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        app.dependency_overrides[get_session] = _get_session
        app.dependency_overrides[get_http_client] = lambda: http_client
        # Webhook forwarding loops back into this app
        app.dependency_overrides[get_forwarding_client] = lambda: client
        try:
            yield client
        finally:
            app.dependency_overrides.clear()
