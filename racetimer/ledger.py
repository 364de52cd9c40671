from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .schemas import Finisher, Race, RaceState

logger = logging.getLogger(__name__)


@dataclass
class Standing:
    place: int
    finisher: Finisher
    elapsed_ms: Optional[int]


def default_name(race: Race) -> str:
    return f"Runner{len(race.finishers) + 1}"


def _find(finishers: list[Finisher], finisher_id: str) -> Optional[Finisher]:
    return next((f for f in finishers if f.id == finisher_id), None)


def append(race: Race, now: int, name: Optional[str] = None) -> Optional[Finisher]:
    """Record a finish at ``now``; only a running race takes live finishes."""
    if race.state != RaceState.STARTED:
        logger.debug("Ignoring finish on race %s in state %s", race.id, race.state.value)
        return None
    finisher = Finisher(name=name or default_name(race), finish_time=now)
    race.finishers.append(finisher)
    return finisher


def manual_insert(race: Race, finish_time: int, name: Optional[str] = None) -> Optional[Finisher]:
    if race.start_time is None:
        logger.debug("Ignoring manual finish on race %s without a start time", race.id)
        return None
    finisher = Finisher(name=name or default_name(race), finish_time=finish_time)
    race.finishers.append(finisher)
    return finisher


def edit(race: Race, finisher_id: str, finish_time: int, name: Optional[str] = None) -> Optional[Finisher]:
    finisher = _find(race.finishers, finisher_id)
    if not finisher:
        return None
    finisher.finish_time = finish_time
    if name is not None:
        finisher.name = name
    return finisher


def delete(race: Race, finisher_id: str) -> Optional[Finisher]:
    finisher = _find(race.finishers, finisher_id)
    if not finisher:
        return None
    race.finishers = [f for f in race.finishers if f.id != finisher_id]
    race.deleted_finishers = [*race.deleted_finishers, finisher]
    return finisher


def restore(race: Race, finisher_id: str) -> Optional[Finisher]:
    finisher = _find(race.deleted_finishers, finisher_id)
    if not finisher:
        return None
    race.deleted_finishers = [f for f in race.deleted_finishers if f.id != finisher_id]
    race.finishers = ordered([*race.finishers, finisher])
    return finisher


def clear_deleted(race: Race) -> int:
    dropped = len(race.deleted_finishers)
    race.deleted_finishers = []
    return dropped


def ordered(finishers: Iterable[Finisher]) -> list[Finisher]:
    # sorted() is stable: equal finish times keep insertion order
    return sorted(finishers, key=lambda f: f.finish_time)


def elapsed_ms(race: Race, finish_time: int) -> Optional[int]:
    if race.start_time is None:
        return None
    return finish_time - race.start_time


def standings(race: Race) -> list[Standing]:
    return [
        Standing(place=i, finisher=f, elapsed_ms=elapsed_ms(race, f.finish_time))
        for i, f in enumerate(ordered(race.finishers), start=1)
    ]
