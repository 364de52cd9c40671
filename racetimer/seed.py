from __future__ import annotations

from datetime import timedelta

from .schemas import Finisher, Race, RaceState
from .timefmt import to_datetime

_MIN = 60 * 1000


def demo_races(now: int) -> list[Race]:
    """A handful of races in every state, timed relative to ``now``."""
    return [
        Race(
            id="r1",
            name="Lester Park Loop",
            state=RaceState.STARTED,
            start_time=now - 83 * _MIN,
            finishers=[
                Finisher(id="f1", name="Alice", finish_time=now - 3 * _MIN),
                Finisher(id="f2", name="Ben", finish_time=now - 2 * _MIN),
                Finisher(id="f3", name="Cara", finish_time=now - 1 * _MIN),
            ],
        ),
        Race(
            id="r2",
            name="Chester Creek Dash",
            state=RaceState.STARTED,
            start_time=now - 15 * _MIN,
            finishers=[
                Finisher(id="f4", name="Dylan", finish_time=now - 3 * _MIN),
                Finisher(id="f5", name="Eva", finish_time=now - 1 * _MIN),
            ],
        ),
        Race(
            id="r3",
            name="Enger Tower Sprint",
            state=RaceState.STOPPED,
            start_time=now - 180 * _MIN,
            stopped_date=to_datetime(now - 50 * _MIN),
            finishers=[
                Finisher(id=f"fs{i}", name=f"Runner{i + 1}", finish_time=now - 180 * _MIN + (40 + 2 * i) * _MIN)
                for i in range(8)
            ],
        ),
        Race(
            id="r4",
            name="Hawk Ridge Classic",
            state=RaceState.ARCHIVED,
            start_time=now - 400 * 24 * 60 * _MIN,
            stopped_date=to_datetime(now - 400 * 24 * 60 * _MIN) + timedelta(hours=2),
            finishers=[
                Finisher(id=f"fh{i}", name=f"Runner{i + 1}", finish_time=now - 400 * 24 * 60 * _MIN + (30 + i) * _MIN)
                for i in range(10)
            ],
        ),
        Race(id="r5", name="Park Point 10K", state=RaceState.BEFORE),
    ]
