from __future__ import annotations

import logging
import math
import re
import time
from datetime import date, datetime
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

ELAPSED_ERROR = "<error: NaN>"

_DURATION_RE = re.compile(r"^\s*(?:(\d{1,2}):)?([0-5]?\d):([0-5]\d)\s*$")
_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})\s*$")
_TIME_12H_RE = re.compile(r"^\s*(0?[1-9]|1[0-2]):([0-5]\d):([0-5]\d)\s*(AM|PM)\s*$", re.IGNORECASE)
_NOT_DATE_CHARS = re.compile(r"[^0-9-]")
_NOT_TIME_CHARS = re.compile(r"[^0-9: apmAPM]")


class ClockTime(NamedTuple):
    hh: int
    mm: int
    ss: int


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def to_datetime(ms: int, tz: str = "UTC") -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=ZoneInfo(tz))


def to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        raise ValueError("Naive datetime; attach a timezone first")
    return int(round(dt.timestamp() * 1000))


def format_elapsed(ms: Optional[float]) -> str:
    """Format a duration as ``[-][H:]MM:SS``.

    Hours are left out entirely below one hour. Fractions of a second are
    truncated. A NaN (or missing) value is logged and rendered as
    ``ELAPSED_ERROR`` instead of raising.
    """
    if ms is None or (isinstance(ms, float) and math.isnan(ms)):
        logger.warning("Cannot format elapsed time %r", ms)
        return ELAPSED_ERROR
    sign = "-" if ms < 0 else ""
    total = int(abs(ms) // 1000)
    hours = total // 3600
    minutes = (total % 3600) // 60
    seconds = total % 60
    hh = f"{hours}:" if hours > 0 else ""
    return f"{sign}{hh}{minutes:02d}:{seconds:02d}"


def parse_duration(text: str) -> Optional[int]:
    """Parse ``H:MM:SS``, ``HH:MM:SS`` or ``MM:SS`` into milliseconds.

    Hours take one or two digits and minutes may drop their leading zero
    (``5:30``, ``1:5:30``); seconds always take two.
    """
    m = _DURATION_RE.match(text or "")
    if not m:
        return None
    hours = int(m.group(1)) if m.group(1) else 0
    return (hours * 3600 + int(m.group(2)) * 60 + int(m.group(3))) * 1000


def format_date(dt: date) -> str:
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"


def parse_date(text: str) -> Optional[date]:
    m = _DATE_RE.match(text or "")
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        # regex-shaped but not a real calendar day (month 13, Feb 30, ...)
        return None


def format_time_12h(dt: datetime) -> str:
    hh = dt.hour % 12 or 12
    ampm = "PM" if dt.hour >= 12 else "AM"
    return f"{hh}:{dt.minute:02d}:{dt.second:02d} {ampm}"


def parse_time_12h(text: str) -> Optional[ClockTime]:
    m = _TIME_12H_RE.match(text or "")
    if not m:
        return None
    hh = int(m.group(1))
    ampm = m.group(4).upper()
    if ampm == "PM" and hh != 12:
        hh += 12
    if ampm == "AM" and hh == 12:
        hh = 0
    return ClockTime(hh, int(m.group(2)), int(m.group(3)))


def keep_date_chars(text: str) -> str:
    return _NOT_DATE_CHARS.sub("", text)


def keep_time_chars(text: str) -> str:
    return _NOT_TIME_CHARS.sub("", text)


def combine_date(start_ms: int, day: date, tz: str = "UTC") -> int:
    """Move ``start_ms`` to another calendar day, keeping its local clock time."""
    current = to_datetime(start_ms, tz)
    moved = datetime.combine(day, current.time(), tzinfo=ZoneInfo(tz))
    return to_ms(moved)


def combine_clock(start_ms: int, clock: ClockTime, tz: str = "UTC") -> int:
    """Set the local clock time of ``start_ms`` (whole seconds), keeping its day."""
    current = to_datetime(start_ms, tz)
    moved = current.replace(hour=clock.hh, minute=clock.mm, second=clock.ss, microsecond=0)
    return to_ms(moved)
