from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

STORE_VERSION = 1


def new_id() -> str:
    return uuid4().hex


class RaceState(str, Enum):
    BEFORE = "before"
    STARTED = "started"
    STOPPED = "stopped"
    ARCHIVED = "archived"


class _Stored(BaseModel):
    # camelCase on disk; unknown keys (e.g. a cached elapsedTime) are dropped
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Finisher(_Stored):
    id: str = Field(default_factory=new_id)
    name: str = ""
    finish_time: int  # ms since epoch


class Race(_Stored):
    id: str = Field(default_factory=new_id)
    name: str = ""
    state: RaceState = RaceState.BEFORE
    start_time: Optional[int] = None  # ms since epoch
    stopped_date: Optional[datetime] = None
    finishers: list[Finisher] = Field(default_factory=list)
    deleted_finishers: list[Finisher] = Field(default_factory=list)

    @field_validator("finishers", "deleted_finishers", mode="before")
    @classmethod
    def _missing_as_empty(cls, v):
        return [] if v is None else v


class RaceDocument(_Stored):
    version: int = STORE_VERSION
    races: list[Race] = Field(default_factory=list)


# ---------------------------
# API payloads
# ---------------------------

class RaceCreate(BaseModel):
    name: str = "New Race"

class RaceRename(BaseModel):
    name: str

class StartTimeUpdate(BaseModel):
    # exactly one of these is used, checked in that order
    start_time: Optional[int] = None
    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # H:MM:SS AM/PM

class FinisherCreate(BaseModel):
    name: str = ""

class FinisherManual(BaseModel):
    name: str = ""
    finish_time: Optional[int] = None
    elapsed: Optional[str] = None  # (h):mm:ss since race start

class FinisherUpdate(BaseModel):
    name: Optional[str] = None
    finish_time: Optional[int] = None
    elapsed: Optional[str] = None

class RaceIds(BaseModel):
    race_ids: list[str]


class StandingOut(BaseModel):
    place: int
    id: str
    name: str
    finish_time: int
    elapsed_ms: Optional[int]
    elapsed: str

class ClockOut(BaseModel):
    race_id: str
    state: RaceState
    start_time: Optional[int]
    elapsed_ms: Optional[int]
    elapsed: str
    poll_ms: int
