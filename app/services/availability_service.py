import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings
from app.models.account import Account
from app.services.calendar_errors import NotConnectedError, ProviderError
from app.services.google_calendar_client import BusyInterval, GoogleApiError, GoogleCalendarClient
from app.services.time_format import format_clock, format_day
from app.services.token_service import get_valid_token

logger = logging.getLogger(__name__)

SATURDAY = 5


@dataclass(frozen=True)
class AvailableSlot:
    start: datetime  # aware, in the clinic timezone
    end: datetime

    @property
    def date(self) -> str:
        return self.start.date().isoformat()

    @property
    def start_time(self) -> str:
        return self.start.strftime("%H:%M")

    @property
    def end_time(self) -> str:
        return self.end.strftime("%H:%M")

    @property
    def day_of_week(self) -> str:
        return self.start.strftime("%A")

    @property
    def formatted_date(self) -> str:
        return format_day(self.start)

    @property
    def formatted_time(self) -> str:
        return format_clock(self.start)


@dataclass(frozen=True)
class AvailabilityResult:
    slots: list[AvailableSlot]  # first `max_offered_slots` only
    total_available: int
    horizon_days: int


def resolve_timezone(account: Account | None, config: Settings = settings) -> ZoneInfo:
    name = (account.timezone if account else None) or config.calendar_timezone
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown timezone %r, falling back to %s", name, config.calendar_timezone)
        return ZoneInfo(config.calendar_timezone)


def overlaps(start: datetime, end: datetime, busy: BusyInterval) -> bool:
    """Half-open intersection: touching boundaries do not overlap."""
    return start < busy.end and end > busy.start


def has_conflict(start: datetime, end: datetime, busy: Iterable[BusyInterval]) -> bool:
    return any(overlaps(start, end, b) for b in busy)


def generate_slots(
    now: datetime,
    busy: list[BusyInterval],
    horizon_days: int,
    tz: ZoneInfo,
    config: Settings = settings,
) -> list[AvailableSlot]:
    """All free whole-hour slots on business days in [today, today + horizon_days), in order.

    Today's first candidate is the hour after the current one, so nothing offered
    starts in the past or within the current hour.
    """
    local_now = now.astimezone(tz)
    today: date = local_now.date()
    duration = timedelta(minutes=config.slot_duration_minutes)
    slots: list[AvailableSlot] = []
    for offset in range(horizon_days):
        day = today + timedelta(days=offset)
        if day.weekday() >= SATURDAY:
            continue
        first_hour = config.business_start_hour
        if offset == 0:
            first_hour = max(config.business_start_hour, local_now.hour + 1)
        for hour in range(first_hour, config.business_end_hour):
            start = datetime.combine(day, time(hour), tzinfo=tz)
            end = start + duration
            if has_conflict(start, end, busy):
                continue
            slots.append(AvailableSlot(start=start, end=end))
    return slots


async def compute_availability(
    session: AsyncSession,
    client: GoogleCalendarClient,
    account_id: int,
    horizon_days: int | None = None,
    now: datetime | None = None,
    config: Settings = settings,
) -> AvailabilityResult:
    """Bookable slots for the account over the horizon.

    Raises NotConnectedError, RefreshFailedError or ProviderError.
    """
    now = now or datetime.now(UTC)
    horizon_days = horizon_days or config.availability_horizon_days
    access_token = await get_valid_token(session, client, account_id, now=now, config=config)
    if access_token is None:
        raise NotConnectedError()

    try:
        busy = await client.query_busy(access_token, now, now + timedelta(days=horizon_days))
    except GoogleApiError as e:
        logger.warning("freeBusy failed for account %s: %s", account_id, e)
        raise ProviderError("Failed to fetch calendar availability") from e

    account = await session.get(Account, account_id)
    slots = generate_slots(now, busy, horizon_days, resolve_timezone(account, config), config)
    logger.debug(
        "Account %s: %d busy intervals, %d free slots over %d days",
        account_id,
        len(busy),
        len(slots),
        horizon_days,
    )
    return AvailabilityResult(
        slots=slots[: config.max_offered_slots],
        total_available=len(slots),
        horizon_days=horizon_days,
    )
