"""
Tests for the race repository: copy-on-write updates, lifecycle and ledger
operations, and persistence round trips through the blob store.
"""

import json
from datetime import datetime, timezone

import pytest

from racetimer.repository import RaceRepository, decode_races, encode_races
from racetimer.schemas import RaceState
from racetimer.seed import demo_races
from racetimer.timefmt import format_elapsed, to_datetime

from conftest import T0


class TestLifecycleOperations:
    def test_create_returns_race(self, repo):
        race = repo.create_race("5K Fun Run")
        assert race.state == RaceState.BEFORE
        assert repo.get_by_id(race.id).name == "5K Fun Run"

    def test_start_twice_keeps_start_time(self, repo, clock):
        race = repo.create_race("x")
        repo.start_race(race.id)
        clock.advance(30_000)
        repo.start_race(race.id)
        assert repo.get_by_id(race.id).start_time == T0

    def test_stop_records_stopped_date(self, repo, running_race, clock):
        clock.advance(60_000)
        stopped = repo.stop_race(running_race.id)
        assert stopped.state == RaceState.STOPPED
        assert stopped.stopped_date == to_datetime(T0 + 60_000)

    def test_archive_and_resume(self, repo, running_race, clock):
        repo.stop_race(running_race.id)
        repo.archive_race(running_race.id)
        clock.advance(1000)
        resumed = repo.start_race(running_race.id)
        assert (resumed.state, resumed.start_time) == (RaceState.STARTED, T0)

    def test_archive_running_race(self, repo, running_race):
        archived = repo.archive_race(running_race.id)
        assert (archived.state, archived.start_time) == (RaceState.ARCHIVED, T0)

    def test_archive_race_that_never_started(self, repo):
        race = repo.create_race("Cancelled")
        assert repo.archive_race(race.id).state == RaceState.ARCHIVED
        assert repo.stop_race(race.id).state == RaceState.ARCHIVED

    def test_rename(self, repo, running_race):
        assert repo.rename_race(running_race.id, "Renamed").name == "Renamed"

    def test_delete(self, repo, running_race):
        assert repo.delete_race(running_race.id)
        assert repo.get_by_id(running_race.id) is None
        assert not repo.delete_race(running_race.id)

    def test_unknown_race_is_none(self, repo):
        assert repo.start_race("missing") is None
        assert repo.get_by_id("missing") is None
        assert repo.get_finisher_by_id("missing", "f") is None
        assert repo.add_finisher("missing") is None

    def test_bulk_archive_and_delete(self, repo, clock):
        ids = []
        for name in ("a", "b", "c"):
            race = repo.create_race(name)
            repo.start_race(race.id)
            ids.append(race.id)
        repo.stop_race(ids[0])
        repo.stop_race(ids[1])
        assert repo.archive_races(ids) == 3
        assert repo.get_by_id(ids[2]).state == RaceState.ARCHIVED
        assert repo.delete_races([ids[0], "missing"]) == 1
        assert [r.id for r in repo.races] == ids[1:]


class TestStartTime:
    def test_set_start_time_recomputes_elapsed(self, repo, running_race):
        finisher = repo.insert_finisher(running_race.id, T0 + 65_000)
        repo.set_start_time(running_race.id, T0 - 10_000)
        race = repo.get_by_id(running_race.id)
        stored = repo.get_finisher_by_id(race.id, finisher.id)
        assert stored.finish_time == T0 + 65_000
        assert format_elapsed(stored.finish_time - race.start_time) == "01:15"

    def test_set_start_time_from_datetime(self, repo, running_race):
        dt = datetime(2025, 10, 9, 9, 0, tzinfo=timezone.utc)
        race = repo.set_start_time(running_race.id, dt)
        assert to_datetime(race.start_time) == dt

    def test_set_start_date_text(self, repo, running_race):
        race = repo.set_start_date_text(running_race.id, "2025-10-01")
        moved = to_datetime(race.start_time)
        assert (moved.month, moved.day, moved.hour, moved.minute) == (10, 1, 8, 53)

    def test_set_start_clock_text(self, repo, running_race):
        race = repo.set_start_clock_text(running_race.id, "2:05:00 PM")
        moved = to_datetime(race.start_time)
        assert (moved.day, moved.hour, moved.minute, moved.second) == (9, 14, 5, 0)

    def test_invalid_text_changes_nothing(self, repo, running_race):
        assert repo.set_start_date_text(running_race.id, "2025-13-01") is None
        assert repo.set_start_clock_text(running_race.id, "25:00:00 PM") is None
        assert repo.get_by_id(running_race.id).start_time == T0

    def test_text_needs_existing_start(self, repo):
        race = repo.create_race("x")
        assert repo.set_start_date_text(race.id, "2025-10-01") is None


class TestFinisherOperations:
    def test_add_only_while_started(self, repo, clock):
        race = repo.create_race("x")
        assert repo.add_finisher(race.id) is None
        repo.start_race(race.id)
        clock.advance(5000)
        assert repo.add_finisher(race.id).finish_time == T0 + 5000
        repo.stop_race(race.id)
        assert repo.add_finisher(race.id) is None
        assert len(repo.get_by_id(race.id).finishers) == 1

    def test_insert_elapsed(self, repo, running_race):
        finisher = repo.insert_finisher_elapsed(running_race.id, "1:02:03", "Late")
        assert finisher.finish_time == T0 + 3_723_000
        assert repo.insert_finisher_elapsed(running_race.id, "1:2:3") is None

    def test_edit_elapsed(self, repo, running_race, clock):
        clock.advance(5000)
        finisher = repo.add_finisher(running_race.id)
        edited = repo.edit_finisher_elapsed(running_race.id, finisher.id, "00:09")
        assert edited.finish_time == T0 + 9000
        assert edited.name == "Runner1"

    def test_delete_restore_clear(self, repo, running_race, clock):
        clock.advance(3000)
        first = repo.add_finisher(running_race.id)
        clock.advance(3000)
        second = repo.add_finisher(running_race.id)
        repo.delete_finisher(running_race.id, first.id)
        assert repo.get_finisher_by_id(running_race.id, first.id) is None

        restored = repo.restore_finisher(running_race.id, first.id)
        race = repo.get_by_id(running_race.id)
        assert restored.id == first.id
        assert [f.id for f in race.finishers] == [first.id, second.id]
        assert race.deleted_finishers == []

        repo.delete_finisher(running_race.id, second.id)
        assert repo.clear_deleted_finishers(running_race.id) == 1
        assert repo.restore_finisher(running_race.id, second.id) is None
        assert repo.get_by_id(running_race.id).deleted_finishers == []

    def test_delete_unknown_finisher_is_noop(self, repo, running_race):
        repo.add_finisher(running_race.id)
        before = repo.get_by_id(running_race.id)
        assert repo.delete_finisher(running_race.id, "nope") is None
        assert repo.get_by_id(running_race.id) == before


class TestCopyOnWrite:
    def test_reads_are_copies(self, repo, running_race):
        race = repo.get_by_id(running_race.id)
        race.name = "mutated outside"
        race.finishers.clear()
        assert repo.get_by_id(running_race.id).name == "5K Fun Run"

    def test_failed_transform_leaves_state(self, repo, running_race):
        def boom(races):
            races[0].name = "half done"
            raise RuntimeError("transform failed")

        with pytest.raises(RuntimeError):
            repo.update_all(boom)
        assert repo.get_by_id(running_race.id).name == "5K Fun Run"

    def test_previous_snapshot_untouched(self, repo, running_race):
        snapshot = repo.races
        repo.rename_race(running_race.id, "New name")
        assert snapshot[0].name == "5K Fun Run"


class TestPersistence:
    def test_reload_from_store(self, store, repo, running_race, clock):
        clock.advance(5000)
        repo.add_finisher(running_race.id, "Alice")
        reloaded = RaceRepository(store, clock=clock, key="races-test")
        reloaded.load()
        race = reloaded.get_by_id(running_race.id)
        assert race.start_time == T0
        assert [f.name for f in race.finishers] == ["Alice"]

    def test_document_is_versioned_camel_case(self, store, repo, running_race):
        doc = json.loads(store.load("races-test"))
        assert doc["version"] == 1
        assert doc["races"][0]["startTime"] == T0
        assert doc["races"][0]["deletedFinishers"] == []

    def test_legacy_list_without_deleted(self):
        raw = json.dumps([
            {
                "id": "r1",
                "name": "Old",
                "state": "stopped",
                "startTime": T0,
                "stoppedDate": "2025-10-09T10:00:00.000Z",
                "finishers": [{"id": "f1", "name": "A", "finishTime": T0 + 1000, "elapsedTime": 999_999}],
            }
        ])
        races = decode_races(raw)
        assert races[0].deleted_finishers == []
        assert races[0].finishers[0].finish_time == T0 + 1000
        assert "elapsedTime" not in encode_races(races)

    def test_seed_when_nothing_stored(self, store, clock):
        repo = RaceRepository(store, clock=clock, key="seeded", seed=demo_races)
        repo.load()
        assert {r.id for r in repo.races} == {r.id for r in demo_races(T0)}
        assert store.load("seeded") is not None

    def test_no_seed_over_stored_data(self, store, repo, running_race, clock):
        again = RaceRepository(store, clock=clock, key="races-test", seed=demo_races)
        again.load()
        assert [r.id for r in again.races] == [running_race.id]

    def test_unreadable_blob_is_not_fatal(self, store, clock):
        store.save("broken", "{not json")
        repo = RaceRepository(store, clock=clock, key="broken", seed=demo_races)
        repo.load()
        assert repo.races == ()
        assert store.load("broken") == "{not json"

    def test_save_failure_keeps_memory_state(self, clock, caplog):
        class FailingStore:
            def load(self, key):
                return None

            def save(self, key, value):
                return False

        repo = RaceRepository(FailingStore(), clock=clock, key="x")
        repo.load()
        race = repo.create_race("Offline")
        assert repo.get_by_id(race.id) is not None
        assert "failed" in caplog.text.lower()

    def test_reset_storage(self, store, repo, running_race):
        repo.reset_storage()
        assert repo.races == ()
        assert store.load("races-test") is None
