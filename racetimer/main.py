from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from starlette.responses import Response

from . import ledger, queries
from .csv_export import ExportError, export_filename, export_race, render_csv
from .repository import RaceRepository
from .schemas import (
    ClockOut,
    Finisher,
    FinisherCreate,
    FinisherManual,
    FinisherUpdate,
    Race,
    RaceCreate,
    RaceIds,
    RaceRename,
    RaceState,
    StandingOut,
    StartTimeUpdate,
)
from .seed import demo_races
from .settings import settings
from .storage import BlobStore
from .timefmt import format_date, format_elapsed, format_time_12h, to_datetime

logger = logging.getLogger(__name__)


def get_repository(request: Request) -> RaceRepository:
    return request.app.state.repository


def _race_or_404(repo: RaceRepository, race_id: str) -> Race:
    race = repo.get_by_id(race_id)
    if not race:
        raise HTTPException(status_code=404, detail="Race not found")
    return race


def _finisher_or_404(finisher: Optional[Finisher]) -> Finisher:
    if not finisher:
        raise HTTPException(status_code=404, detail="Finisher not found")
    return finisher


def _csv_response(filename: str, text: str) -> Response:
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app(repository: Optional[RaceRepository] = None) -> FastAPI:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.LOG_LEVEL)

    if repository is None:
        repository = RaceRepository(
            BlobStore.from_url(settings.RACETIMER_DB_URL),
            seed=demo_races if settings.RACETIMER_SEED_DEMO else None,
        )
        repository.load()

    app = FastAPI(title="Race Timer")
    app.state.repository = repository

    # ---------------------------
    # Race lists
    # ---------------------------

    @app.get("/races", response_model=list[Race])
    def list_races(state: Optional[RaceState] = None, repo: RaceRepository = Depends(get_repository)):
        races = repo.races
        if state is not None:
            races = tuple(r for r in races if r.state == state)
        return list(races)

    @app.get("/races/underway", response_model=list[Race])
    def underway_races(repo: RaceRepository = Depends(get_repository)):
        return queries.underway(repo.races)

    @app.get("/races/finished", response_model=list[Race])
    def finished_races(repo: RaceRepository = Depends(get_repository)):
        return queries.finished(repo.races)

    @app.get("/races/recent", response_model=list[Race])
    def recent_races(repo: RaceRepository = Depends(get_repository)):
        window = timedelta(hours=settings.RACETIMER_RECENT_STOPPED_HOURS)
        return queries.recently_stopped(repo.races, to_datetime(repo.now()), window)

    @app.get("/races/past", response_model=list[Race])
    def past_races(
        q: str = "",
        year: Optional[int] = None,
        month: Optional[int] = Query(default=None, ge=1, le=12),
        archived: bool = False,
        repo: RaceRepository = Depends(get_repository),
    ):
        return queries.search_past(repo.races, q, year, month, archived, tz=repo.tz)

    @app.get("/races/years")
    def race_years(repo: RaceRepository = Depends(get_repository)):
        return queries.available_years(repo.races, tz=repo.tz)

    @app.post("/races/bulk/archive")
    def bulk_archive(payload: RaceIds, repo: RaceRepository = Depends(get_repository)):
        return {"archived": repo.archive_races(payload.race_ids)}

    @app.post("/races/bulk/delete")
    def bulk_delete(payload: RaceIds, repo: RaceRepository = Depends(get_repository)):
        return {"deleted": repo.delete_races(payload.race_ids)}

    # ---------------------------
    # Single race
    # ---------------------------

    @app.post("/races", response_model=Race, status_code=201)
    def create_race(payload: RaceCreate, repo: RaceRepository = Depends(get_repository)):
        return repo.create_race(payload.name)

    @app.get("/races/{race_id}", response_model=Race)
    def get_race(race_id: str, repo: RaceRepository = Depends(get_repository)):
        return _race_or_404(repo, race_id)

    @app.patch("/races/{race_id}", response_model=Race)
    def rename_race(race_id: str, payload: RaceRename, repo: RaceRepository = Depends(get_repository)):
        return repo.rename_race(race_id, payload.name) or _race_or_404(repo, race_id)

    @app.delete("/races/{race_id}", status_code=204)
    def delete_race(race_id: str, repo: RaceRepository = Depends(get_repository)):
        if not repo.delete_race(race_id):
            raise HTTPException(status_code=404, detail="Race not found")
        return Response(status_code=204)

    @app.post("/races/{race_id}/start", response_model=Race)
    def start_race(race_id: str, repo: RaceRepository = Depends(get_repository)):
        return repo.start_race(race_id) or _race_or_404(repo, race_id)

    @app.post("/races/{race_id}/stop", response_model=Race)
    def stop_race(race_id: str, repo: RaceRepository = Depends(get_repository)):
        return repo.stop_race(race_id) or _race_or_404(repo, race_id)

    @app.post("/races/{race_id}/archive", response_model=Race)
    def archive_race(race_id: str, repo: RaceRepository = Depends(get_repository)):
        return repo.archive_race(race_id) or _race_or_404(repo, race_id)

    @app.put("/races/{race_id}/start-time", response_model=Race)
    def set_start_time(race_id: str, payload: StartTimeUpdate, repo: RaceRepository = Depends(get_repository)):
        race = _race_or_404(repo, race_id)
        if payload.start_time is not None:
            return repo.set_start_time(race_id, payload.start_time)
        if race.start_time is None:
            raise HTTPException(status_code=409, detail="Race has no start time to adjust")
        current = to_datetime(race.start_time, repo.tz)
        if payload.date is not None:
            updated = repo.set_start_date_text(race_id, payload.date)
            if not updated:
                raise HTTPException(
                    status_code=422,
                    detail={"message": "Please enter date as yyyy-mm-dd", "revert": format_date(current)},
                )
            return updated
        if payload.time is not None:
            updated = repo.set_start_clock_text(race_id, payload.time)
            if not updated:
                raise HTTPException(
                    status_code=422,
                    detail={
                        "message": "Please enter time as h:mm:ss AM/PM (e.g. 2:05:00 PM)",
                        "revert": format_time_12h(current),
                    },
                )
            return updated
        raise HTTPException(status_code=422, detail="Provide start_time, date or time")

    @app.get("/races/{race_id}/clock", response_model=ClockOut)
    def race_clock(race_id: str, repo: RaceRepository = Depends(get_repository)):
        race = _race_or_404(repo, race_id)
        elapsed = repo.elapsed_now(race_id)
        return ClockOut(
            race_id=race.id,
            state=race.state,
            start_time=race.start_time,
            elapsed_ms=elapsed,
            elapsed=format_elapsed(elapsed) if elapsed is not None else "",
            poll_ms=settings.CLOCK_POLL_MS,
        )

    # ---------------------------
    # Finishers
    # ---------------------------

    @app.get("/races/{race_id}/standings", response_model=list[StandingOut])
    def race_standings(race_id: str, repo: RaceRepository = Depends(get_repository)):
        race = _race_or_404(repo, race_id)
        return [
            StandingOut(
                place=s.place,
                id=s.finisher.id,
                name=s.finisher.name,
                finish_time=s.finisher.finish_time,
                elapsed_ms=s.elapsed_ms,
                elapsed=format_elapsed(s.elapsed_ms) if s.elapsed_ms is not None else "",
            )
            for s in ledger.standings(race)
        ]

    @app.post("/races/{race_id}/finishers", response_model=Optional[Finisher])
    def add_finisher(race_id: str, payload: FinisherCreate, repo: RaceRepository = Depends(get_repository)):
        _race_or_404(repo, race_id)
        # None when the race is not running
        return repo.add_finisher(race_id, payload.name)

    @app.post("/races/{race_id}/finishers/manual", response_model=Finisher, status_code=201)
    def insert_finisher(race_id: str, payload: FinisherManual, repo: RaceRepository = Depends(get_repository)):
        race = _race_or_404(repo, race_id)
        if race.start_time is None:
            raise HTTPException(status_code=409, detail="Race has no start time")
        if payload.finish_time is not None:
            return repo.insert_finisher(race_id, payload.finish_time, payload.name)
        finisher = repo.insert_finisher_elapsed(race_id, payload.elapsed or "", payload.name)
        if not finisher:
            raise HTTPException(status_code=422, detail="Please enter time as (h):mm:ss")
        return finisher

    @app.patch("/races/{race_id}/finishers/{finisher_id}", response_model=Finisher)
    def edit_finisher(
        race_id: str, finisher_id: str, payload: FinisherUpdate, repo: RaceRepository = Depends(get_repository)
    ):
        _race_or_404(repo, race_id)
        current = _finisher_or_404(repo.get_finisher_by_id(race_id, finisher_id))
        if payload.elapsed is not None:
            finisher = repo.edit_finisher_elapsed(race_id, finisher_id, payload.elapsed, payload.name)
            if not finisher:
                raise HTTPException(status_code=422, detail="Please enter time as (h):mm:ss")
            return finisher
        finish_time = payload.finish_time if payload.finish_time is not None else current.finish_time
        return _finisher_or_404(repo.edit_finisher(race_id, finisher_id, finish_time, payload.name))

    @app.delete("/races/{race_id}/finishers/{finisher_id}", response_model=Finisher)
    def delete_finisher(race_id: str, finisher_id: str, repo: RaceRepository = Depends(get_repository)):
        _race_or_404(repo, race_id)
        return _finisher_or_404(repo.delete_finisher(race_id, finisher_id))

    @app.post("/races/{race_id}/deleted-finishers/{finisher_id}/restore", response_model=Finisher)
    def restore_finisher(race_id: str, finisher_id: str, repo: RaceRepository = Depends(get_repository)):
        _race_or_404(repo, race_id)
        return _finisher_or_404(repo.restore_finisher(race_id, finisher_id))

    @app.delete("/races/{race_id}/deleted-finishers")
    def clear_deleted_finishers(race_id: str, repo: RaceRepository = Depends(get_repository)):
        dropped = repo.clear_deleted_finishers(race_id)
        if dropped is None:
            raise HTTPException(status_code=404, detail="Race not found")
        return {"cleared": dropped}

    # ---------------------------
    # Export
    # ---------------------------

    @app.get("/races/{race_id}/results.csv")
    def results_csv(race_id: str, repo: RaceRepository = Depends(get_repository)):
        race = _race_or_404(repo, race_id)
        try:
            text = render_csv(race)
        except ExportError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return _csv_response(export_filename(race, repo.tz, repo.now()), text)

    @app.post("/races/{race_id}/export")
    def export_to_disk(race_id: str, repo: RaceRepository = Depends(get_repository)):
        race = _race_or_404(repo, race_id)
        try:
            path = export_race(race, settings.RACETIMER_EXPORT_DIR, repo.tz)
        except ExportError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"path": str(path)}

    return app
