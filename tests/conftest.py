"""
Shared fixtures for race timer tests.

Races are driven by a fake clock so that every start, finish and stop lands
on a known millisecond.
"""

import pytest

from racetimer.repository import RaceRepository
from racetimer.storage import BlobStore

T0 = 1_760_000_000_000  # 2025-10-09T08:53:20Z


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> BlobStore:
    return BlobStore.from_url(f"sqlite:///{tmp_path / 'races.db'}")


@pytest.fixture
def repo(store, clock) -> RaceRepository:
    """Empty repository persisting to a throwaway SQLite file."""
    r = RaceRepository(store, clock=clock, key="races-test", tz="UTC")
    r.load()
    return r


@pytest.fixture
def running_race(repo, clock):
    """A race started at T0 with nothing recorded yet."""
    race = repo.create_race("5K Fun Run")
    repo.start_race(race.id)
    return repo.get_by_id(race.id)
