from __future__ import annotations

import csv
import logging
import re
from datetime import datetime
from io import StringIO
from pathlib import Path
from typing import Optional

from .ledger import standings
from .schemas import Race
from .timefmt import format_elapsed, now_ms, to_datetime

logger = logging.getLogger(__name__)

HEADER = ["place", "name", "time"]

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


class ExportError(Exception):
    """Export refused or failed; race state is never touched."""


def sanitize_name(name: str) -> str:
    return _UNSAFE.sub("", _WHITESPACE.sub("_", name or ""))


def check_exportable(race: Race) -> None:
    if not race.finishers:
        raise ExportError("Cannot export CSV: there are no finishers for this race.")
    if race.start_time is None:
        raise ExportError("Cannot export CSV: the race has no start time.")


def render_csv(race: Race) -> str:
    check_exportable(race)
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(HEADER)
    for s in standings(race):
        w.writerow([s.place, s.finisher.name or "", format_elapsed(s.elapsed_ms)])
    return buf.getvalue()


def export_filename(race: Race, tz: str = "UTC", now: Optional[int] = None) -> str:
    stamp: datetime = to_datetime(race.start_time if race.start_time is not None else (now or now_ms()), tz)
    return f"{stamp:%Y-%m-%d_%H%M}_{sanitize_name(race.name)}.csv"


def export_race(race: Race, directory: str | Path, tz: str = "UTC") -> Path:
    text = render_csv(race)
    target = Path(directory) / export_filename(race, tz)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8", newline="")
    except OSError as exc:
        logger.exception("Error exporting race %s to %s", race.id, target)
        raise ExportError("An error occurred while exporting the CSV.") from exc
    logger.info("CSV export written: %s", target)
    return target
