"""Database URL handling and column types."""

import pytest
from sqlalchemy import DateTime

from app.core.db import _async_database_url
from app.models.appointment import Appointment
from app.models.calendar_credential import CalendarCredential

pytestmark = pytest.mark.unit


class TestAsyncDatabaseUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "sqlite+aiosqlite:///:memory:",
            "sqlite+aiosqlite:////var/lib/clinic/calendar.db",
            "sqlite+aiosqlite://",
        ],
    )
    def test_non_postgres_urls_are_untouched(self, url):
        assert _async_database_url(url) == url

    def test_postgres_switches_to_asyncpg_and_drops_psycopg_params(self):
        url = "postgresql://clinic:pw@db.example.com:5432/calendar?sslmode=require&channel_binding=require"
        assert _async_database_url(url) == "postgresql+asyncpg://clinic:pw@db.example.com:5432/calendar"

    def test_asyncpg_url_keeps_other_params(self):
        url = "postgresql+asyncpg://clinic:pw@db/calendar?sslmode=require&application_name=calendar"
        assert _async_database_url(url) == (
            "postgresql+asyncpg://clinic:pw@db/calendar?application_name=calendar"
        )


class TestTimestampColumns:
    @pytest.mark.parametrize(
        "column",
        [
            CalendarCredential.__table__.c.token_expires_at,
            CalendarCredential.__table__.c.created_at,
            CalendarCredential.__table__.c.updated_at,
            Appointment.__table__.c.start_utc,
            Appointment.__table__.c.end_utc,
            Appointment.__table__.c.created_at,
            Appointment.__table__.c.updated_at,
        ],
        ids=lambda c: f"{c.table.name}.{c.name}",
    )
    def test_naive_utc_datetime_columns(self, column):
        assert type(column.type) is DateTime
        assert column.type.timezone is False
        assert column.nullable is False

    def test_start_is_indexed(self):
        assert Appointment.__table__.c.start_utc.index is True
