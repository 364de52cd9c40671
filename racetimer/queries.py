"""Read-side views over the race collection. Nothing here mutates a race."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional

from .schemas import Race, RaceState
from .timefmt import to_datetime


def underway(races: Iterable[Race]) -> list[Race]:
    return [r for r in races if r.state == RaceState.STARTED]


def finished(races: Iterable[Race]) -> list[Race]:
    return [r for r in races if r.state == RaceState.STOPPED]


def recently_stopped(races: Iterable[Race], now: datetime, window: timedelta = timedelta(hours=24)) -> list[Race]:
    cutoff = now - window
    return [
        r for r in races
        if r.state == RaceState.STOPPED and r.stopped_date is not None and r.stopped_date > cutoff
    ]


def search_past(
    races: Iterable[Race],
    text: str = "",
    year: Optional[int] = None,
    month: Optional[int] = None,
    archived: bool = False,
    tz: str = "UTC",
) -> list[Race]:
    wanted = RaceState.ARCHIVED if archived else RaceState.STOPPED
    needle = (text or "").lower()
    out: list[Race] = []
    for r in races:
        if r.state != wanted or r.start_time is None:
            continue
        started = to_datetime(r.start_time, tz)
        if needle not in (r.name or "").lower():
            continue
        if year is not None and started.year != year:
            continue
        if month is not None and started.month != month:
            continue
        out.append(r)
    return out


def available_years(races: Iterable[Race], tz: str = "UTC") -> list[int]:
    years = {to_datetime(r.start_time, tz).year for r in races if r.start_time is not None}
    return sorted(years, reverse=True)
