from datetime import UTC, datetime
from enum import StrEnum

from pydantic import ConfigDict
from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(StrEnum):
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="accounts.id", index=True)
    caller_name: str
    caller_number: str
    title: str
    event_id: str = Field(index=True)  # remote calendar event
    calendar_link: str | None = None
    # Plain DateTime columns: values are naive UTC (TIMESTAMP WITHOUT TIME ZONE)
    start_utc: datetime = Field(sa_column=Column(DateTime(), nullable=False, index=True))
    end_utc: datetime = Field(sa_column=Column(DateTime(), nullable=False))
    status: str = Field(default=AppointmentStatus.BOOKED.value, index=True)
    created_at: datetime = Field(
        default_factory=_utc_naive_now, sa_column=Column(DateTime(), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=_utc_naive_now, sa_column=Column(DateTime(), nullable=False)
    )


class AppointmentPublic(SQLModel):
    id: int
    account_id: int
    caller_name: str
    caller_number: str
    title: str
    event_id: str
    calendar_link: str | None = None
    start_utc: datetime
    end_utc: datetime
    status: str
    created_at: datetime
    updated_at: datetime


class BookingRequest(SQLModel):
    """Booking input as sent by the dashboard or the voice assistant.

    Everything is optional here; the booking service reports what is missing.
    """

    # Voice runtimes often send phone numbers as JSON numbers
    model_config = ConfigDict(coerce_numbers_to_str=True)

    date: str | None = None  # YYYY-MM-DD, clinic timezone
    time: str | None = None  # HH:MM, clinic timezone
    duration: int | None = None  # minutes
    title: str | None = None
    caller_name: str | None = None
    caller_number: str | None = None
    description: str | None = None
