"""Access token reuse, refresh and failure handling."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs

import pytest

from app.services.calendar_errors import RefreshFailedError
from app.services.credential_service import get_credential, update_access_token
from app.services.token_service import get_valid_token

pytestmark = pytest.mark.unit

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)
STORED_ACCESS_TOKEN = "ya29.stored-access-token"
STORED_REFRESH_TOKEN = "1//stored-refresh-token"


class TestGetValidToken:
    async def test_fresh_token_is_reused_without_network(
        self, session, account, calendar_client, connect_calendar, google
    ):
        await connect_calendar(account, now=NOW, expires_in=timedelta(minutes=10))

        token = await get_valid_token(session, calendar_client, account.id, now=NOW)

        assert token == STORED_ACCESS_TOKEN
        assert google.requests == []

    async def test_token_inside_buffer_is_refreshed_once(
        self, session, account, calendar_client, connect_calendar, google
    ):
        credential = await connect_calendar(account, now=NOW, expires_in=timedelta(minutes=2))
        old_expiry = credential.token_expires_at

        token = await get_valid_token(session, calendar_client, account.id, now=NOW)

        assert token == google.refreshed_access_token
        [request] = google.calls("token")
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == [STORED_REFRESH_TOKEN]

        await session.refresh(credential)
        assert credential.access_token == google.refreshed_access_token
        assert credential.token_expires_at > old_expiry
        assert credential.token_expires_at == (
            NOW + timedelta(seconds=google.expires_in)
        ).replace(tzinfo=None)
        # Refresh token is never rotated by a refresh
        assert credential.refresh_token == STORED_REFRESH_TOKEN

    async def test_expired_token_is_refreshed(
        self, session, account, calendar_client, connect_calendar, google
    ):
        await connect_calendar(account, now=NOW, expires_in=timedelta(hours=-3))

        token = await get_valid_token(session, calendar_client, account.id, now=NOW)

        assert token == google.refreshed_access_token
        assert len(google.calls("token")) == 1

    async def test_no_credential_returns_none(self, session, account, calendar_client, google):
        assert await get_valid_token(session, calendar_client, account.id, now=NOW) is None
        assert google.requests == []

    async def test_rejected_refresh_leaves_credential_untouched(
        self, session, account, calendar_client, connect_calendar, google
    ):
        credential = await connect_calendar(account, now=NOW, expires_in=timedelta(minutes=1))
        old_expiry = credential.token_expires_at
        google.token_status = 400

        with pytest.raises(RefreshFailedError):
            await get_valid_token(session, calendar_client, account.id, now=NOW)

        await session.refresh(credential)
        assert credential.access_token == STORED_ACCESS_TOKEN
        assert credential.token_expires_at == old_expiry

    async def test_stored_token_is_used_once_refreshed(
        self, session, account, calendar_client, connect_calendar, google
    ):
        await connect_calendar(account, now=NOW, expires_in=timedelta(minutes=2))
        await get_valid_token(session, calendar_client, account.id, now=NOW)

        token = await get_valid_token(
            session, calendar_client, account.id, now=NOW + timedelta(minutes=1)
        )

        assert token == google.refreshed_access_token
        assert len(google.calls("token")) == 1


class TestUpdateAccessToken:
    async def test_stale_observation_does_not_overwrite(
        self, session, account, connect_calendar
    ):
        credential = await connect_calendar(account, now=NOW)
        stored_expiry = credential.token_expires_at

        updated = await update_access_token(
            session,
            account.id,
            observed_expires_at=NOW - timedelta(hours=1),
            access_token="ya29.late-writer",
            expires_at=NOW + timedelta(hours=2),
        )

        assert updated is False
        await session.refresh(credential)
        assert credential.access_token == STORED_ACCESS_TOKEN
        assert credential.token_expires_at == stored_expiry

    async def test_matching_observation_overwrites(self, session, account, connect_calendar):
        credential = await connect_calendar(account, now=NOW)

        updated = await update_access_token(
            session,
            account.id,
            observed_expires_at=credential.token_expires_at.replace(tzinfo=UTC),
            access_token="ya29.new",
            expires_at=NOW + timedelta(hours=2),
        )

        assert updated is True
        fresh = await get_credential(session, account.id)
        await session.refresh(fresh)
        assert fresh.access_token == "ya29.new"
