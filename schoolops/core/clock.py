from datetime import date, datetime, time
from typing import Optional, Union
from zoneinfo import ZoneInfo

from schoolops.core.config import settings


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def now() -> datetime:
    """Current time in the school's timezone."""
    return datetime.now(local_tz())


def parse_moment(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """
    Turn a column value into an aware datetime.

    Date-only values ("2026-10-18") are read as local midnight, timestamps
    without an offset are read as local time.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).replace("Z", "+00:00")
        if len(text) == 10:
            parsed = datetime.combine(date.fromisoformat(text), time.min)
        else:
            parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=local_tz())
    return parsed


def end_of_day(value: Union[str, date, datetime]) -> datetime:
    start = parse_moment(value)
    return start.replace(hour=23, minute=59, second=59, microsecond=999999)
