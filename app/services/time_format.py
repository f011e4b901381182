"""Human-readable date/time strings used in API payloads and spoken replies."""
from datetime import datetime


def format_clock(dt: datetime) -> str:
    """`14:00` -> `2:00 PM`."""
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {suffix}"


def format_day(dt: datetime) -> str:
    """`Monday, March 10`."""
    return f"{dt:%A}, {dt:%B} {dt.day}"


def format_full_date(dt: datetime) -> str:
    """`Monday, March 10, 2025`."""
    return f"{format_day(dt)}, {dt.year}"
