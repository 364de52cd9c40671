"""Race lifecycle: which state changes are allowed and what they touch.

    before -> started -> stopped -> archived
                 ^          |          |
                 +----------+----------+   (resume)

Archiving is allowed from any state. Stopping needs a start time, so a race
that never started cannot be stopped; stopping again restamps ``stopped_date``.

``start_time`` is set once, on the first start, and kept through every later
transition so that resuming never resets the elapsed history.
"""
from __future__ import annotations

import logging
from datetime import datetime

from .schemas import Race, RaceState

logger = logging.getLogger(__name__)

TRANSITIONS: dict[RaceState, frozenset[RaceState]] = {
    RaceState.BEFORE: frozenset({RaceState.STARTED, RaceState.ARCHIVED}),
    RaceState.STARTED: frozenset({RaceState.STARTED, RaceState.STOPPED, RaceState.ARCHIVED}),
    RaceState.STOPPED: frozenset({RaceState.STARTED, RaceState.STOPPED, RaceState.ARCHIVED}),
    RaceState.ARCHIVED: frozenset({RaceState.STARTED, RaceState.STOPPED, RaceState.ARCHIVED}),
}


def can_transition(current: RaceState, target: RaceState) -> bool:
    return target in TRANSITIONS[current]


def create(name: str) -> Race:
    return Race(name=name)


def start(race: Race, now: int) -> bool:
    if not can_transition(race.state, RaceState.STARTED):
        logger.info("Race %s cannot start from %s", race.id, race.state.value)
        return False
    if race.start_time is None:
        race.start_time = now
    race.state = RaceState.STARTED
    return True


def stop(race: Race, stopped_at: datetime) -> bool:
    # a stopped race always has a start time
    if race.start_time is None or not can_transition(race.state, RaceState.STOPPED):
        logger.info("Race %s cannot stop from %s", race.id, race.state.value)
        return False
    race.state = RaceState.STOPPED
    race.stopped_date = stopped_at
    return True


def archive(race: Race) -> bool:
    if not can_transition(race.state, RaceState.ARCHIVED):
        logger.info("Race %s cannot be archived from %s", race.id, race.state.value)
        return False
    race.state = RaceState.ARCHIVED
    return True


def rename(race: Race, name: str) -> None:
    race.name = name


def set_start_time(race: Race, start_time: int) -> None:
    # finish times are absolute; only derived elapsed values move
    race.start_time = start_time
