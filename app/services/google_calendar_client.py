import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class GoogleApiError(Exception):
    """Raised when a Google OAuth or Calendar request fails (network error or non-2xx)."""

    def __init__(self, *, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"Google request failed: {message}")
        else:
            super().__init__(f"Google request failed ({status_code}): {message}")


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    expires_in: int
    refresh_token: str | None = None


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class CreatedEvent:
    event_id: str
    html_link: str | None = None


def to_rfc3339(dt: datetime) -> str:
    """UTC RFC 3339 with a trailing Z; naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_google_datetime(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return payload.get("error_description") or error
    return response.text[:500]


def _coerce_expires_in(raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_LIFETIME_SECONDS
    return value if value > 0 else DEFAULT_TOKEN_LIFETIME_SECONDS


class GoogleCalendarClient:
    """Thin async wrapper over the Google OAuth token endpoint and Calendar v3 API."""

    def __init__(self, http_client: httpx.AsyncClient, config: Settings = settings) -> None:
        self._http = http_client
        self._config = config

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self._config.google_client_id,
            "redirect_uri": self._config.google_redirect_uri,
            "response_type": "code",
            "scope": self._config.google_calendar_scope,
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{self._config.google_oauth_authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        return await self._token_request(
            {
                "code": code,
                "client_id": self._config.google_client_id,
                "client_secret": self._config.google_client_secret,
                "redirect_uri": self._config.google_redirect_uri,
                "grant_type": "authorization_code",
            }
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        return await self._token_request(
            {
                "client_id": self._config.google_client_id,
                "client_secret": self._config.google_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )

    async def _token_request(self, data: dict[str, str]) -> TokenGrant:
        try:
            resp = await self._http.post(
                self._config.google_oauth_token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise GoogleApiError(status_code=None, message=str(e)) from e
        if resp.status_code < 200 or resp.status_code >= 300:
            raise GoogleApiError(status_code=resp.status_code, message=_error_message(resp))
        try:
            payload = resp.json()
        except ValueError as e:
            raise GoogleApiError(
                status_code=resp.status_code, message="token endpoint returned invalid JSON"
            ) from e
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            raise GoogleApiError(
                status_code=resp.status_code, message="token response has no access_token"
            )
        return TokenGrant(
            access_token=access_token.strip(),
            expires_in=_coerce_expires_in(payload.get("expires_in")),
            refresh_token=payload.get("refresh_token") or None,
        )

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self._config.google_calendar_api_base.rstrip('/')}{path}"
        try:
            return await self._http.request(
                method,
                url,
                json=json_body,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise GoogleApiError(status_code=None, message=str(e)) from e

    async def query_busy(
        self, access_token: str, time_min: datetime, time_max: datetime
    ) -> list[BusyInterval]:
        """Busy intervals on the configured calendar within [time_min, time_max)."""
        calendar_id = self._config.calendar_id
        resp = await self._request(
            "POST",
            "/freeBusy",
            access_token,
            json_body={
                "timeMin": to_rfc3339(time_min),
                "timeMax": to_rfc3339(time_max),
                "items": [{"id": calendar_id}],
            },
        )
        if resp.status_code < 200 or resp.status_code >= 300:
            raise GoogleApiError(status_code=resp.status_code, message=_error_message(resp))
        try:
            payload = resp.json()
        except ValueError as e:
            raise GoogleApiError(
                status_code=resp.status_code, message="freeBusy returned invalid JSON"
            ) from e
        calendars = payload.get("calendars") if isinstance(payload, dict) else None
        entry = calendars.get(calendar_id) if isinstance(calendars, dict) else None
        if not isinstance(entry, dict):
            return []
        intervals: list[BusyInterval] = []
        for window in entry.get("busy") or []:
            try:
                start = parse_google_datetime(window["start"])
                end = parse_google_datetime(window["end"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed freeBusy window: %r", window)
                continue
            intervals.append(BusyInterval(start=start, end=end))
        return intervals

    async def create_event(self, access_token: str, event: dict[str, Any]) -> CreatedEvent:
        calendar_id = quote(self._config.calendar_id, safe="")
        resp = await self._request("POST", f"/calendars/{calendar_id}/events", access_token, json_body=event)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise GoogleApiError(status_code=resp.status_code, message=_error_message(resp))
        try:
            payload = resp.json()
        except ValueError as e:
            raise GoogleApiError(
                status_code=resp.status_code, message="event insert returned invalid JSON"
            ) from e
        event_id = payload.get("id") if isinstance(payload, dict) else None
        if not event_id:
            raise GoogleApiError(status_code=resp.status_code, message="created event has no id")
        return CreatedEvent(event_id=str(event_id), html_link=payload.get("htmlLink"))

    async def delete_event(self, access_token: str, event_id: str) -> None:
        calendar_id = quote(self._config.calendar_id, safe="")
        resp = await self._request(
            "DELETE", f"/calendars/{calendar_id}/events/{quote(event_id, safe='')}", access_token
        )
        # Already gone counts as deleted
        if resp.status_code in (404, 410):
            return
        if resp.status_code < 200 or resp.status_code >= 300:
            raise GoogleApiError(status_code=resp.status_code, message=_error_message(resp))
