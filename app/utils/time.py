from datetime import date, datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes coming back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_minutes_between(start: datetime, end: datetime) -> int:
    return int((as_utc(end) - as_utc(start)).total_seconds() // 60)


def whole_seconds_between(start: datetime, end: datetime) -> int:
    return int((as_utc(end) - as_utc(start)).total_seconds() // 1)


def local_today(tz: ZoneInfo, now: Optional[datetime] = None) -> date:
    current = now or utc_now()
    return as_utc(current).astimezone(tz).date()


def format_elapsed(seconds: int) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_minutes(minutes: Optional[int]) -> str:
    if minutes is None:
        return "0 h 0 min"
    hours, mins = divmod(int(minutes), 60)
    return f"{hours} h {mins} min"
