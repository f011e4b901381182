from app.models.account import Account
from app.models.calendar_credential import CalendarCredential, CalendarStatus
from app.models.appointment import (
    Appointment,
    AppointmentPublic,
    AppointmentStatus,
    BookingRequest,
)

__all__ = [
    "Account",
    "CalendarCredential",
    "CalendarStatus",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
    "BookingRequest",
]
