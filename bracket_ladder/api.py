from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
import secrets
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
import uvicorn

from .config import get_settings
from .models import (
    AddPlayerRequest,
    AddPlayerResponse,
    AppendResultsResponse,
    AutoAddResponse,
    CacheStatus,
    DataSummaryResponse,
    EventsResponse,
    ImportEventRequest,
    ImportEventResponse,
    LeaderboardResponse,
    PlayersResponse,
    ReimportResultsResponse,
    ResultsPreviewResponse,
    StandingsExportResponse,
    SyncRequest,
    TournamentEventsResponse,
    UnmappedResponse,
)
from .scoring import ScoringModel
from .service import LadderService
from .startgg_client import StartGGAPIError, StartGGClient
from .store import LadderStore, RecordStoreError

logger = logging.getLogger(__name__)

_settings = get_settings()
logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
_client = StartGGClient(_settings)
_store = LadderStore(_settings.data_dir)
_service = LadderService(
    _client,
    _store,
    scoring=ScoringModel.with_overrides(
        _settings.tier_multipliers, _settings.default_tier_multiplier
    ),
    default_tier=_settings.default_tier,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    startup_rebuild: asyncio.Task | None = None
    if _settings.rebuild_on_startup:
        startup_rebuild = asyncio.create_task(_service.rebuild_cache())
    try:
        yield
    finally:
        try:
            if startup_rebuild is not None:
                startup_rebuild.cancel()
                with suppress(asyncio.CancelledError):
                    await startup_rebuild
        finally:
            await _client.aclose()


app = FastAPI(
    title="Bracket Ladder",
    version="0.1.0",
    description="Community leaderboard built from start.gg tournament standings.",
    lifespan=lifespan,
)


def require_admin(x_admin_key: Optional[str] = Header(default=None)) -> None:
    expected = _settings.admin_key
    if not expected or not x_admin_key or not secrets.compare_digest(
        x_admin_key.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _store_failure(exc: RecordStoreError) -> HTTPException:
    logger.error("Record store error: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    season: Optional[int] = Query(default=None, ge=1990, le=2100),
) -> LeaderboardResponse:
    try:
        return _service.get_leaderboard(season=season)
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.get("/cache/status", response_model=CacheStatus)
async def cache_status() -> CacheStatus:
    return _service.cache_status()


@app.post("/cache/rebuild", response_model=CacheStatus, dependencies=[Depends(require_admin)])
async def cache_rebuild() -> CacheStatus:
    return await _service.rebuild_cache()


@app.get("/players", response_model=PlayersResponse)
async def players() -> PlayersResponse:
    try:
        return _service.list_players()
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.post("/players", response_model=AddPlayerResponse, dependencies=[Depends(require_admin)])
async def add_player(request: AddPlayerRequest) -> AddPlayerResponse:
    try:
        return _service.add_player(request.external_id, request.tag, request.region)
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.post(
    "/players/auto-add", response_model=AutoAddResponse, dependencies=[Depends(require_admin)]
)
async def auto_add_players(request: SyncRequest) -> AutoAddResponse:
    try:
        return await _service.auto_add_unmapped(request.slug, request.event_id)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.get("/events", response_model=EventsResponse)
async def events() -> EventsResponse:
    try:
        return _service.list_events()
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.post(
    "/events/import", response_model=ImportEventResponse, dependencies=[Depends(require_admin)]
)
async def import_event(request: ImportEventRequest) -> ImportEventResponse:
    try:
        return await _service.import_event(request)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.get("/standings/export", response_model=StandingsExportResponse)
async def standings_export(slug: str = Query(..., min_length=1)) -> StandingsExportResponse:
    try:
        return await _service.export_standings(slug)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/results/preview", response_model=ResultsPreviewResponse)
async def results_preview(
    slug: str = Query(..., min_length=1),
    event_id: str = Query(..., min_length=1),
) -> ResultsPreviewResponse:
    try:
        return await _service.preview_results(slug, event_id)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.get("/results/unmapped", response_model=UnmappedResponse)
async def results_unmapped(
    slug: str = Query(..., min_length=1),
    event_id: str = Query(..., min_length=1),
) -> UnmappedResponse:
    try:
        return await _service.list_unmapped(slug, event_id)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.post(
    "/results/append", response_model=AppendResultsResponse, dependencies=[Depends(require_admin)]
)
async def results_append(request: SyncRequest) -> AppendResultsResponse:
    try:
        return await _service.append_results(request.slug, request.event_id)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.post(
    "/results/reimport",
    response_model=ReimportResultsResponse,
    dependencies=[Depends(require_admin)],
)
async def results_reimport(request: SyncRequest) -> ReimportResultsResponse:
    try:
        return await _service.reimport_results(request.slug, request.event_id)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


@app.get("/tournament-events", response_model=TournamentEventsResponse)
async def tournament_events(url: str = Query(..., min_length=1)) -> TournamentEventsResponse:
    try:
        return await _service.tournament_events(url)
    except StartGGAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/debug/data", response_model=DataSummaryResponse)
async def debug_data() -> DataSummaryResponse:
    try:
        return _service.data_summary()
    except RecordStoreError as exc:
        raise _store_failure(exc) from exc


def run() -> None:
    uvicorn.run("bracket_ladder.api:app", host="127.0.0.1", port=8000, reload=False)


if __name__ == "__main__":
    run()
