from datetime import datetime

from pydantic import BaseModel, Field


class SlotInfo(BaseModel):
    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM
    end_time: str
    day_of_week: str
    formatted_date: str
    formatted_time: str
    start: datetime
    end: datetime


class AvailabilityResponse(BaseModel):
    success: bool = True
    available_slots: list[SlotInfo]
    total_available: int
    message: str


class BookingRequestBody(BaseModel):
    date: str | None = Field(default=None, examples=["2025-03-10"])
    time: str | None = Field(default=None, examples=["14:00"])
    duration: int | None = Field(default=None, examples=[60])
    title: str | None = None
    caller_name: str | None = None
    caller_number: str | None = None
    description: str | None = None


class BookedAppointment(BaseModel):
    id: int
    event_id: str
    caller_name: str
    caller_number: str
    start_time: datetime
    end_time: datetime
    formatted_date: str
    formatted_time: str
    calendar_link: str | None = None
    status: str


class BookingResponse(BaseModel):
    success: bool = True
    appointment: BookedAppointment
    message: str


class CalendarErrorDetail(BaseModel):
    error: str
    message: str


class ConnectUrlResponse(BaseModel):
    authorization_url: str
