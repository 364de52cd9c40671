"""The race repository: the only mutation surface over the race collection.

Every operation is a transform run through :meth:`RaceRepository.update_all`,
which works on a private deep copy and swaps the result in wholesale. Readers
therefore only ever see committed collections. After each swap the whole
collection is written to the blob store; a failed write is logged and the
in-memory state stays authoritative until the next successful save.
"""
from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, Optional, TypeVar

from pydantic import ValidationError

from . import ledger, lifecycle
from .schemas import Finisher, Race, RaceDocument
from .settings import settings
from .storage import BlobStore
from .timefmt import (
    combine_clock,
    combine_date,
    now_ms,
    parse_date,
    parse_duration,
    parse_time_12h,
    to_datetime,
    to_ms,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def decode_races(raw: str) -> list[Race]:
    """Parse a stored document, accepting the legacy bare-list form."""
    data = json.loads(raw)
    if isinstance(data, list):
        data = {"version": 0, "races": data}
    return RaceDocument.model_validate(data).races


def encode_races(races: Iterable[Race]) -> str:
    doc = RaceDocument(races=list(races))
    return doc.model_dump_json(by_alias=True)


class RaceRepository:
    def __init__(
        self,
        store: Optional[BlobStore] = None,
        *,
        clock: Callable[[], int] = now_ms,
        key: str | None = None,
        tz: str | None = None,
        seed: Optional[Callable[[int], list[Race]]] = None,
    ):
        self._store = store
        self._clock = clock
        self._key = key or settings.RACETIMER_STORE_KEY
        self.tz = tz or settings.RACETIMER_TIMEZONE
        self._seed = seed
        self._races: list[Race] = []
        self._lock = threading.Lock()

    # ---------------------------
    # Persistence
    # ---------------------------

    def load(self) -> None:
        stored: list[Race] = []
        raw = self._store.load(self._key) if self._store else None
        if raw:
            try:
                stored = decode_races(raw)
            except (ValueError, ValidationError):
                # leave the blob alone; the next mutation replaces it
                logger.exception("Stored races under %r are unreadable; starting empty", self._key)
                return
        if stored:
            with self._lock:
                self._races = stored
            logger.info("Loaded %d races from storage", len(stored))
            return
        if self._seed is None:
            return
        logger.info("No stored races found; using demo data")
        seeded = self._seed(self._clock())
        self.update_all(lambda _races: seeded)

    def _persist(self, races: list[Race]) -> None:
        if self._store is None:
            return
        if not self._store.save(self._key, encode_races(races)):
            logger.error("Saving %d races failed; keeping in-memory state", len(races))

    def reset_storage(self) -> None:
        """Drop everything stored under the repository key and in memory."""
        with self._lock:
            self._races = []
        if self._store is not None:
            self._store.remove(self._key)

    # ---------------------------
    # Copy-on-write core
    # ---------------------------

    def update_all(self, transform: Callable[[list[Race]], list[Race]]) -> None:
        with self._lock:
            draft = [r.model_copy(deep=True) for r in self._races]
            self._races = list(transform(draft))
            self._persist(self._races)

    def _update_race(self, race_id: str, fn: Callable[[Race], T]) -> Optional[T]:
        """Run ``fn`` on the draft copy of one race; None if the race is absent."""
        result: list[T] = []

        def transform(races: list[Race]) -> list[Race]:
            for race in races:
                if race.id == race_id:
                    result.append(fn(race))
            return races

        self.update_all(transform)
        if not result:
            logger.debug("Race %s not found", race_id)
            return None
        return result[0]

    # ---------------------------
    # Reads
    # ---------------------------

    @property
    def races(self) -> tuple[Race, ...]:
        return tuple(r.model_copy(deep=True) for r in self._races)

    def get_by_id(self, race_id: str) -> Optional[Race]:
        race = next((r for r in self._races if r.id == race_id), None)
        return race.model_copy(deep=True) if race else None

    def get_finisher_by_id(self, race_id: str, finisher_id: str) -> Optional[Finisher]:
        race = next((r for r in self._races if r.id == race_id), None)
        if not race:
            return None
        finisher = next((f for f in race.finishers if f.id == finisher_id), None)
        return finisher.model_copy() if finisher else None

    def now(self) -> int:
        return self._clock()

    def elapsed_now(self, race_id: str) -> Optional[int]:
        race = self.get_by_id(race_id)
        if not race or race.start_time is None:
            return None
        return self._clock() - race.start_time

    # ---------------------------
    # Lifecycle
    # ---------------------------

    def create_race(self, name: str) -> Race:
        race = lifecycle.create(name)
        self.update_all(lambda races: [*races, race])
        logger.info("Created race %s (%s)", race.id, name)
        return race.model_copy(deep=True)

    def start_race(self, race_id: str) -> Optional[Race]:
        now = self._clock()
        return self._mutate_race(race_id, lambda race: lifecycle.start(race, now))

    def stop_race(self, race_id: str) -> Optional[Race]:
        stopped_at = to_datetime(self._clock())
        return self._mutate_race(race_id, lambda race: lifecycle.stop(race, stopped_at))

    def archive_race(self, race_id: str) -> Optional[Race]:
        return self._mutate_race(race_id, lifecycle.archive)

    def rename_race(self, race_id: str, name: str) -> Optional[Race]:
        return self._mutate_race(race_id, lambda race: lifecycle.rename(race, name))

    def set_start_time(self, race_id: str, start: int | datetime) -> Optional[Race]:
        start_ms = to_ms(start) if isinstance(start, datetime) else int(start)
        return self._mutate_race(race_id, lambda race: lifecycle.set_start_time(race, start_ms))

    def set_start_date_text(self, race_id: str, text: str) -> Optional[Race]:
        """Move the start to the day in ``text`` (YYYY-MM-DD); None if invalid."""
        day = parse_date(text)
        if day is None:
            return None
        return self._shift_start(race_id, lambda start: combine_date(start, day, self.tz))

    def set_start_clock_text(self, race_id: str, text: str) -> Optional[Race]:
        """Set the start's clock time from ``text`` (H:MM:SS AM/PM); None if invalid."""
        clock = parse_time_12h(text)
        if clock is None:
            return None
        return self._shift_start(race_id, lambda start: combine_clock(start, clock, self.tz))

    def delete_race(self, race_id: str) -> bool:
        existed = self.delete_races([race_id]) == 1
        if existed:
            logger.info("Deleted race %s", race_id)
        return existed

    def archive_races(self, race_ids: Iterable[str]) -> int:
        ids = set(race_ids)
        archived: list[str] = []

        def transform(races: list[Race]) -> list[Race]:
            for race in races:
                if race.id in ids and lifecycle.archive(race):
                    archived.append(race.id)
            return races

        self.update_all(transform)
        return len(archived)

    def delete_races(self, race_ids: Iterable[str]) -> int:
        ids = set(race_ids)
        removed: list[str] = []

        def transform(races: list[Race]) -> list[Race]:
            removed.extend(r.id for r in races if r.id in ids)
            return [r for r in races if r.id not in ids]

        self.update_all(transform)
        return len(removed)

    # ---------------------------
    # Finisher ledger
    # ---------------------------

    def add_finisher(self, race_id: str, name: str = "") -> Optional[Finisher]:
        now = self._clock()
        return self._finisher_op(race_id, lambda race: ledger.append(race, now, name))

    def insert_finisher(self, race_id: str, finish_time: int, name: str = "") -> Optional[Finisher]:
        return self._finisher_op(race_id, lambda race: ledger.manual_insert(race, finish_time, name))

    def insert_finisher_elapsed(self, race_id: str, elapsed: str, name: str = "") -> Optional[Finisher]:
        elapsed_ms = parse_duration(elapsed)
        if elapsed_ms is None:
            return None

        def insert(race: Race) -> Optional[Finisher]:
            if race.start_time is None:
                return None
            return ledger.manual_insert(race, race.start_time + elapsed_ms, name)

        return self._finisher_op(race_id, insert)

    def edit_finisher(
        self, race_id: str, finisher_id: str, finish_time: int, name: Optional[str] = None
    ) -> Optional[Finisher]:
        return self._finisher_op(race_id, lambda race: ledger.edit(race, finisher_id, finish_time, name))

    def edit_finisher_elapsed(
        self, race_id: str, finisher_id: str, elapsed: str, name: Optional[str] = None
    ) -> Optional[Finisher]:
        elapsed_ms = parse_duration(elapsed)
        if elapsed_ms is None:
            return None

        def edit(race: Race) -> Optional[Finisher]:
            if race.start_time is None:
                return None
            return ledger.edit(race, finisher_id, race.start_time + elapsed_ms, name)

        return self._finisher_op(race_id, edit)

    def delete_finisher(self, race_id: str, finisher_id: str) -> Optional[Finisher]:
        return self._finisher_op(race_id, lambda race: ledger.delete(race, finisher_id))

    def restore_finisher(self, race_id: str, finisher_id: str) -> Optional[Finisher]:
        return self._finisher_op(race_id, lambda race: ledger.restore(race, finisher_id))

    def clear_deleted_finishers(self, race_id: str) -> Optional[int]:
        return self._update_race(race_id, ledger.clear_deleted)

    # ---------------------------
    # Helpers
    # ---------------------------

    def _mutate_race(self, race_id: str, fn: Callable[[Race], object]) -> Optional[Race]:
        def apply(race: Race) -> Race:
            fn(race)
            return race.model_copy(deep=True)

        return self._update_race(race_id, apply)

    def _finisher_op(self, race_id: str, fn: Callable[[Race], Optional[Finisher]]) -> Optional[Finisher]:
        def apply(race: Race) -> Optional[Finisher]:
            finisher = fn(race)
            return finisher.model_copy() if finisher else None

        return self._update_race(race_id, apply)

    def _shift_start(self, race_id: str, fn: Callable[[int], int]) -> Optional[Race]:
        def apply(race: Race) -> Optional[Race]:
            if race.start_time is None:
                return None
            lifecycle.set_start_time(race, fn(race.start_time))
            return race.model_copy(deep=True)

        return self._update_race(race_id, apply)
