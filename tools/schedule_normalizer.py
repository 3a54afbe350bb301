"""
Schedule Normalizer
Turns loosely-structured frequency/time input into the canonical
(HH:MM, interval-days) dose model, plus the calendar arithmetic
used to decide whether a medication is due on a given day.
"""

import logging
import math
import re
from datetime import datetime, date, time, timedelta, timezone
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo

from config import settings, scheduling_config


logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
INTEGER_PATTERN = re.compile(r"\d+")


# ==================== FREQUENCY / TIME ====================

def normalize_frequency(raw: Any) -> int:
    """
    Convert a frequency description into days between doses.

    Numbers pass through, keywords ("daily", "every other day", "weekly")
    map to 1/2/7, otherwise the first integer in the text wins. Anything
    else, including None, is daily. Never returns less than 1.
    """
    if raw is None or isinstance(raw, bool):
        return 1

    if isinstance(raw, (int, float)):
        return max(1, int(raw))

    text_value = str(raw).strip().lower()
    if not text_value:
        return 1

    for keywords, days in scheduling_config.FREQUENCY_KEYWORDS:
        if any(keyword in text_value for keyword in keywords):
            return days

    match = INTEGER_PATTERN.search(text_value)
    if match:
        return max(1, int(match.group(0)))

    return 1


def infer_time_from_name(medication_name: Optional[str]) -> str:
    """Pick a sensible time of day from the medication's name"""
    name = (medication_name or "").lower()
    for keywords, slot in scheduling_config.TIME_INFERENCE_RULES:
        if any(keyword in name for keyword in keywords):
            return slot
    return scheduling_config.DEFAULT_TIME


def normalize_time(raw: Any, medication_name: Optional[str] = None) -> str:
    """
    Return a zero-padded HH:MM.

    Well-formed H:MM / HH:MM input is trusted as is; anything else falls
    back to inference from the medication name.
    """
    if raw is not None:
        match = TIME_PATTERN.match(str(raw).strip())
        if match:
            return f"{int(match.group(1)):02d}:{match.group(2)}"

    inferred = infer_time_from_name(medication_name)
    logger.debug(f"Inferred schedule time {inferred} for {medication_name!r} (raw={raw!r})")
    return inferred


# ==================== TIMEZONE HELPERS ====================

def get_zone(name: Optional[str] = None) -> ZoneInfo:
    """Configured timezone"""
    return ZoneInfo(name or settings.TIMEZONE)


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC (that is how the store keeps them)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_utc_naive(dt: datetime) -> datetime:
    """Convert to the naive UTC form persisted by the store"""
    return ensure_aware(dt).astimezone(timezone.utc).replace(tzinfo=None)


def to_local(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    return ensure_aware(dt).astimezone(tz or get_zone())


def local_hhmm(now: datetime, tz: Optional[ZoneInfo] = None) -> str:
    """Current wall-clock HH:MM in the configured zone"""
    return to_local(now, tz).strftime("%H:%M")


def local_today(now: datetime, tz: Optional[ZoneInfo] = None) -> date:
    return to_local(now, tz).date()


def local_day_bounds(day: date, tz: Optional[ZoneInfo] = None) -> Tuple[datetime, datetime]:
    """
    UTC (naive) bounds [start, end) of a local calendar day.

    The day may be 23 or 25 hours long around DST changes, so both ends
    are computed from their own local midnight.
    """
    tz = tz or get_zone()
    start = datetime.combine(day, time(0, 0), tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)
    return to_utc_naive(start), to_utc_naive(end)


# ==================== DAY GATE ====================

def local_midnight(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Wall-clock midnight of dt's local calendar day.

    Returned naive so that differences between two midnights are always
    whole multiples of 24h, whatever DST did in between.
    """
    local = to_local(dt, tz)
    return datetime.combine(local.date(), time(0, 0))


def days_since_creation(
    created_at: datetime,
    now: datetime,
    tz: Optional[ZoneInfo] = None
) -> int:
    """Whole calendar days between creation and now, in the local zone"""
    delta = abs(local_midnight(now, tz) - local_midnight(created_at, tz))
    return math.ceil(delta / timedelta(days=1))


def is_due_today(
    created_at: Optional[datetime],
    frequency: Optional[int],
    now: datetime,
    tz: Optional[ZoneInfo] = None
) -> bool:
    """True when today is one of the medication's scheduled days"""
    interval = normalize_frequency(frequency)
    if interval == 1 or created_at is None:
        return True
    return days_since_creation(created_at, now, tz) % interval == 0
