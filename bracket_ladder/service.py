from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import logging

from .cache import RebuildProgress, ResultsCache
from .identity import build_identity_map, find_duplicate_external_ids
from .leaderboard import build_leaderboard
from .models import (
    AddPlayerResponse,
    AppendResultsResponse,
    AutoAddResponse,
    CacheStatus,
    DataSummaryResponse,
    Event,
    EventsResponse,
    EventUpsert,
    ExternalEvent,
    ImportEventRequest,
    ImportEventResponse,
    LeaderboardResponse,
    PlayersResponse,
    ReimportResultsResponse,
    Result,
    ResultsPreviewResponse,
    StandingsExportResponse,
    TournamentEventsResponse,
    UnmappedResponse,
)
from .normalizer import NormalizedStandings, export_standings, normalize_standings
from .scoring import ScoringModel
from .startgg_client import StartGGClient, extract_tournament_slug
from .store import LadderStore, merge_results

logger = logging.getLogger(__name__)


@dataclass
class _EventSync:
    external: ExternalEvent
    normalized: NormalizedStandings


class LadderService:
    def __init__(
        self,
        startgg: StartGGClient,
        store: LadderStore,
        cache: ResultsCache | None = None,
        scoring: ScoringModel | None = None,
        default_tier: str = "B",
    ):
        self._startgg = startgg
        self._store = store
        self._cache = cache or ResultsCache()
        self._scoring = scoring or ScoringModel()
        self._default_tier = default_tier

    @property
    def cache(self) -> ResultsCache:
        return self._cache

    async def _sync_event(self, slug: str, event_id: str) -> _EventSync:
        external = await self._startgg.get_event(slug)
        nodes = await self._startgg.fetch_all_standings(external.id)
        identity_map = build_identity_map(self._store.load_players())
        normalized = normalize_standings(nodes, event_id, identity_map)
        logger.info(
            "Synced %s as %s: %s standings, %s mapped, %s unmapped",
            slug,
            event_id,
            len(nodes),
            len(normalized.mapped),
            len(normalized.unmapped),
        )
        return _EventSync(external=external, normalized=normalized)

    async def export_standings(self, slug: str) -> StandingsExportResponse:
        external = await self._startgg.get_event(slug)
        nodes = await self._startgg.fetch_all_standings(external.id)
        exported = export_standings(nodes)
        return StandingsExportResponse(
            slug=slug,
            external_event_id=external.id,
            event_name=external.name,
            count=len(exported),
            missing_external_ids=sum(1 for row in exported if row.external_id is None),
            exported=exported,
        )

    async def preview_results(self, slug: str, event_id: str) -> ResultsPreviewResponse:
        sync = await self._sync_event(slug, event_id)
        return ResultsPreviewResponse(
            slug=slug,
            event_id=event_id,
            external_event_id=sync.external.id,
            event_name=sync.external.name,
            mapped_count=len(sync.normalized.mapped),
            unmapped_count=len(sync.normalized.unmapped),
            results=sync.normalized.mapped,
            unmapped=sync.normalized.unmapped,
        )

    async def list_unmapped(self, slug: str, event_id: str) -> UnmappedResponse:
        sync = await self._sync_event(slug, event_id)
        return UnmappedResponse(
            slug=slug,
            event_id=event_id,
            unmapped_count=len(sync.normalized.unmapped),
            unmapped=sync.normalized.unmapped,
        )

    async def append_results(self, slug: str, event_id: str) -> AppendResultsResponse:
        sync = await self._sync_event(slug, event_id)
        appended = self._store.append_results(sync.normalized.mapped)
        return AppendResultsResponse(
            event_id=event_id,
            slug=slug,
            appended=appended,
            mapped_count=len(sync.normalized.mapped),
            unmapped_count=len(sync.normalized.unmapped),
        )

    async def reimport_results(self, slug: str, event_id: str) -> ReimportResultsResponse:
        # Fetch first so a failed fetch leaves the stored results untouched.
        sync = await self._sync_event(slug, event_id)
        removed, appended = self._store.reimport_results(event_id, sync.normalized.mapped)
        return ReimportResultsResponse(
            event_id=event_id,
            slug=slug,
            removed=removed,
            appended=appended,
            mapped_count=len(sync.normalized.mapped),
            unmapped_count=len(sync.normalized.unmapped),
        )

    async def import_event(self, request: ImportEventRequest) -> ImportEventResponse:
        external = await self._startgg.get_event(request.event_slug)
        if external.tournament_id is not None:
            event_id = f"t_{external.tournament_id}"
        else:
            event_id = f"e_{external.id}"
        event = Event(
            event_id=event_id,
            season=request.season,
            tier=request.tier,
            name=external.tournament_name or external.name or event_id,
            external_slug=request.event_slug,
        )
        added = self._store.upsert_event(event)

        nodes = await self._startgg.fetch_all_standings(external.id)
        normalized = normalize_standings(
            nodes, event_id, build_identity_map(self._store.load_players())
        )
        appended = self._store.append_results(normalized.mapped)
        logger.info(
            "Imported %s as %s (%s appended, %s unmapped)",
            request.event_slug,
            event_id,
            appended,
            len(normalized.unmapped),
        )

        cache_status = await self.rebuild_cache()
        return ImportEventResponse(
            event=event,
            event_upsert=EventUpsert(added=added, updated=not added),
            event_slug=request.event_slug,
            external_event_id=external.id,
            event_name=external.name,
            appended=appended,
            mapped_count=len(normalized.mapped),
            unmapped_count=len(normalized.unmapped),
            unmapped=normalized.unmapped,
            cache=cache_status,
        )

    def add_player(self, external_id: int, tag: str, region: str = "") -> AddPlayerResponse:
        player, created = self._store.add_player(external_id, tag, region)
        return AddPlayerResponse(created=created, player=player)

    async def auto_add_unmapped(self, slug: str, event_id: str) -> AutoAddResponse:
        sync = await self._sync_event(slug, event_id)
        response = AutoAddResponse(slug=slug, event_id=event_id)
        for entry in sync.normalized.unmapped:
            if entry.external_id is None:
                response.skipped_without_id += 1
                continue
            tag = entry.gamer_tag or f"player_{entry.external_id}"
            player, created = self._store.add_player(entry.external_id, tag)
            if created:
                response.added.append(player)
            else:
                response.already_registered += 1
        return response

    def list_players(self) -> PlayersResponse:
        players = sorted(self._store.load_players(), key=lambda player: player.tag)
        return PlayersResponse(count=len(players), players=players)

    def list_events(self) -> EventsResponse:
        events = self._store.load_events()
        return EventsResponse(count=len(events), events=events)

    async def tournament_events(self, url: str) -> TournamentEventsResponse:
        tournament_slug = extract_tournament_slug(url)
        if not tournament_slug:
            raise ValueError("Could not parse a start.gg tournament slug from the URL.")
        name, events = await self._startgg.get_tournament_events(tournament_slug)
        return TournamentEventsResponse(
            tournament_slug=tournament_slug,
            tournament_name=name,
            events=events,
        )

    def get_leaderboard(self, season: int | None = None) -> LeaderboardResponse:
        return build_leaderboard(
            self._cache.results,
            self._store.load_events(),
            self._store.load_players(),
            self._scoring,
            season=season,
            default_tier=self._default_tier,
        )

    def cache_status(self) -> CacheStatus:
        return self._cache.status()

    async def rebuild_cache(self) -> CacheStatus:
        return await self._cache.rebuild(self._replay_all_events)

    async def _replay_all_events(self, progress: RebuildProgress) -> list[Result]:
        events = [event for event in self._store.load_events() if event.external_slug]
        progress.start(len(events))
        identity_map = build_identity_map(self._store.load_players())

        built: list[Result] = []
        for event in events:
            external = await self._startgg.get_event(event.external_slug)
            nodes = await self._startgg.fetch_all_standings(external.id)
            merge_results(built, normalize_standings(nodes, event.event_id, identity_map).mapped)
            progress.advance()
        return built

    def data_summary(self) -> DataSummaryResponse:
        results = self._store.load_results()
        events = self._store.load_events()
        known = {event.event_id for event in events}
        counts = Counter(result.event_id for result in results)
        return DataSummaryResponse(
            results_count=len(results),
            results_by_event=dict(sorted(counts.items())),
            unknown_event_ids=sorted(event_id for event_id in counts if event_id not in known),
            events=events,
            duplicate_external_ids=find_duplicate_external_ids(self._store.load_players()),
        )
