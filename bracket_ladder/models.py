from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Player(BaseModel):
    player_id: str
    tag: str
    region: str = ""
    external_id: Optional[int] = None


class Event(BaseModel):
    event_id: str
    season: int
    tier: str = ""
    name: str = ""
    external_slug: Optional[str] = None


class Result(BaseModel):
    model_config = ConfigDict(frozen=True)

    player_id: str
    event_id: str
    placement: int = Field(ge=1)


# start.gg standings payload. Every nested object may be missing or null.


class StandingPlayer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    gamer_tag: Optional[str] = Field(default=None, alias="gamerTag")


class StandingParticipant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    gamer_tag: Optional[str] = Field(default=None, alias="gamerTag")
    player: Optional[StandingPlayer] = None


class StandingEntrant(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    participants: Optional[list[Optional[StandingParticipant]]] = None


class StandingNode(BaseModel):
    placement: int = Field(ge=1)
    entrant: Optional[StandingEntrant] = None


class ExternalEvent(BaseModel):
    id: int
    name: Optional[str] = None
    tournament_id: Optional[int] = None
    tournament_name: Optional[str] = None


class UnmappedEntry(BaseModel):
    external_id: Optional[int] = None
    gamer_tag: Optional[str] = None
    entrant_name: Optional[str] = None
    placement: int


class ExportedStanding(BaseModel):
    placement: int
    external_id: Optional[int] = None
    gamer_tag: Optional[str] = None
    entrant_name: Optional[str] = None
    entrant_id: Optional[int] = None


class StandingsExportResponse(BaseModel):
    slug: str
    external_event_id: int
    event_name: Optional[str] = None
    count: int = 0
    missing_external_ids: int = 0
    exported: list[ExportedStanding] = Field(default_factory=list)


class ResultsPreviewResponse(BaseModel):
    slug: str
    event_id: str
    external_event_id: int
    event_name: Optional[str] = None
    mapped_count: int = 0
    unmapped_count: int = 0
    results: list[Result] = Field(default_factory=list)
    unmapped: list[UnmappedEntry] = Field(default_factory=list)


class UnmappedResponse(BaseModel):
    slug: str
    event_id: str
    unmapped_count: int = 0
    unmapped: list[UnmappedEntry] = Field(default_factory=list)


class SyncRequest(BaseModel):
    slug: str = Field(min_length=1)
    event_id: str = Field(min_length=1)


class AppendResultsResponse(BaseModel):
    event_id: str
    slug: str
    appended: int = 0
    mapped_count: int = 0
    unmapped_count: int = 0


class ReimportResultsResponse(AppendResultsResponse):
    removed: int = 0


class ImportEventRequest(BaseModel):
    event_slug: str = Field(min_length=1)
    season: int = Field(ge=1990, le=2100)
    tier: str = Field(min_length=1)


class EventUpsert(BaseModel):
    added: bool
    updated: bool


class CacheStatus(BaseModel):
    state: Literal["empty", "rebuilding", "populated"] = "empty"
    rebuilding: bool = False
    last_rebuild_at: Optional[datetime] = None
    last_error: Optional[str] = None
    events_processed: int = 0
    events_total: int = 0
    results_count: int = 0


class ImportEventResponse(BaseModel):
    event: Event
    event_upsert: EventUpsert
    event_slug: str
    external_event_id: int
    event_name: Optional[str] = None
    appended: int = 0
    mapped_count: int = 0
    unmapped_count: int = 0
    unmapped: list[UnmappedEntry] = Field(default_factory=list)
    cache: CacheStatus


class AddPlayerRequest(BaseModel):
    external_id: int
    tag: str = Field(min_length=1)
    region: str = ""


class AddPlayerResponse(BaseModel):
    created: bool
    player: Player


class AutoAddResponse(BaseModel):
    slug: str
    event_id: str
    added: list[Player] = Field(default_factory=list)
    already_registered: int = 0
    skipped_without_id: int = 0


class PlayersResponse(BaseModel):
    count: int = 0
    players: list[Player] = Field(default_factory=list)


class EventsResponse(BaseModel):
    count: int = 0
    events: list[Event] = Field(default_factory=list)


class TournamentEventSummary(BaseModel):
    id: int
    name: Optional[str] = None
    slug: Optional[str] = None


class TournamentEventsResponse(BaseModel):
    tournament_slug: str
    tournament_name: Optional[str] = None
    events: list[TournamentEventSummary] = Field(default_factory=list)


class LeaderboardRow(BaseModel):
    rank: int
    player_id: str
    tag: str
    region: str = ""
    points: int = 0
    events: int = 0
    best_finish: Optional[int] = None


class LeaderboardResponse(BaseModel):
    season: Optional[int] = None
    events_known: int = 0
    results_used: int = 0
    players_known: int = 0
    players_ranked: int = 0
    leaderboard: list[LeaderboardRow] = Field(default_factory=list)


class DataSummaryResponse(BaseModel):
    results_count: int = 0
    results_by_event: dict[str, int] = Field(default_factory=dict)
    unknown_event_ids: list[str] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)
    duplicate_external_ids: dict[int, list[str]] = Field(default_factory=dict)
