"""
Interval Math
Parsing of `<amount><unit>` interval strings and calendar-aligned period buckets.

Units: m (minute), H (hour), D (day), W (week), M (month).
Lowercase h/d/w are accepted as exchange-style aliases.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Optional, Union

logger = logging.getLogger(__name__)

MINUTE = "m"
HOUR = "H"
DAY = "D"
WEEK = "W"
MONTH = "M"

_UNIT_ALIASES = {
    "m": MINUTE,
    "H": HOUR,
    "h": HOUR,
    "D": DAY,
    "d": DAY,
    "W": WEEK,
    "w": WEEK,
    "M": MONTH,
}

# Months are treated as 30 days wherever a fixed duration is required
_FIXED_DURATIONS = {
    MINUTE: timedelta(minutes=1),
    HOUR: timedelta(hours=1),
    DAY: timedelta(days=1),
    WEEK: timedelta(weeks=1),
    MONTH: timedelta(days=30),
}


@dataclass(frozen=True)
class Interval:
    """Parsed candle interval."""
    text: str
    amount: int
    unit: Optional[str]

    @property
    def is_known(self) -> bool:
        """Check if the unit was recognized."""
        return self.unit is not None


IntervalLike = Union[Interval, str]


@lru_cache(maxsize=256)
def parse_interval(text: str) -> Interval:
    """
    Parse an interval string such as "5m", "4H" or "1M".

    Malformed amounts fall back to 1 and unknown units are kept as None.
    Neither case raises: a bad interval string must not fail tick processing.
    Cached, so each malformed string is reported once.
    """
    raw = (text or "").strip()
    if not raw:
        logger.warning("Empty interval string, defaulting to 1 with unknown unit")
        return Interval(text=raw, amount=1, unit=None)

    unit = _UNIT_ALIASES.get(raw[-1])
    try:
        amount = int(raw[:-1])
    except ValueError:
        logger.warning(f"Unparseable interval amount in '{raw}', defaulting to 1")
        amount = 1

    if amount <= 0:
        logger.warning(f"Non-positive interval amount in '{raw}', defaulting to 1")
        amount = 1

    if unit is None:
        logger.warning(f"Unknown interval unit in '{raw}', truncating seconds only")

    return Interval(text=raw, amount=amount, unit=unit)


def _coerce(interval: IntervalLike) -> Interval:
    if isinstance(interval, Interval):
        return interval
    return parse_interval(interval)


def _in_zone(ts: datetime, tz: tzinfo) -> datetime:
    """Express a timestamp in the bucket calendar; naive values are taken as already local."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts.astimezone(tz)


def period_start(
    ts: datetime,
    interval: IntervalLike,
    tz: tzinfo = timezone.utc,
) -> datetime:
    """
    Compute the calendar-aligned bucket start containing a timestamp.

    Args:
        ts: Timestamp to bucket
        interval: Interval string or parsed Interval
        tz: Calendar in which day/week/month boundaries are drawn

    Returns:
        Bucket start as an aware datetime in `tz`
    """
    iv = _coerce(interval)
    local = _in_zone(ts, tz)

    if iv.unit == MINUTE:
        minute = (local.minute // iv.amount) * iv.amount
        return local.replace(minute=minute, second=0, microsecond=0)

    if iv.unit == HOUR:
        hour = (local.hour // iv.amount) * iv.amount
        return local.replace(hour=hour, minute=0, second=0, microsecond=0)

    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)

    if iv.unit == DAY:
        return midnight

    if iv.unit == WEEK:
        return midnight - timedelta(days=local.weekday())

    if iv.unit == MONTH:
        return midnight.replace(day=1)

    return local.replace(second=0, microsecond=0)


def interval_duration(interval: IntervalLike) -> timedelta:
    """Fixed duration of one interval; unknown units count as one minute."""
    iv = _coerce(interval)
    if iv.unit is None:
        return timedelta(minutes=1)
    return _FIXED_DURATIONS[iv.unit] * iv.amount


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def close_time_for(open_time: datetime, interval: IntervalLike) -> datetime:
    """Derive a candle close time from its open time."""
    iv = _coerce(interval)
    if iv.unit == MONTH:
        return _add_months(open_time, iv.amount)
    return open_time + interval_duration(iv)
