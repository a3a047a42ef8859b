from __future__ import annotations

import asyncio

import pytest

from bracket_ladder.models import (
    Event,
    ExternalEvent,
    ImportEventRequest,
    Player,
    Result,
    StandingNode,
)
from bracket_ladder.service import LadderService
from bracket_ladder.startgg_client import StartGGAPIError
from bracket_ladder.store import LadderStore


def _node(placement: int, external_id: int | None, tag: str | None = None) -> StandingNode:
    player = {"id": external_id, "gamerTag": tag} if external_id is not None else None
    return StandingNode.model_validate(
        {
            "placement": placement,
            "entrant": {
                "id": placement,
                "name": tag,
                "participants": [{"id": placement, "gamerTag": tag, "player": player}],
            },
        }
    )


class _FakeStartGGClient:
    def __init__(self, standings: dict[str, list[StandingNode]]):
        self.standings = standings
        self.failing_slugs: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.entered: asyncio.Event | None = None
        self.fetches: list[str] = []
        self._slug_by_id = {idx + 1: slug for idx, slug in enumerate(standings)}

    async def get_event(self, slug: str) -> ExternalEvent:
        if slug in self.failing_slugs:
            raise StartGGAPIError(f"start.gg API error for {slug}")
        external_id = next(k for k, v in self._slug_by_id.items() if v == slug)
        return ExternalEvent(
            id=external_id,
            name="Singles",
            tournament_id=500 + external_id,
            tournament_name=f"Tournament {external_id}",
        )

    async def fetch_all_standings(self, event_id: int, per_page: int | None = None):
        slug = self._slug_by_id[event_id]
        self.fetches.append(slug)
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        return list(self.standings[slug])


@pytest.fixture
def store(tmp_path) -> LadderStore:
    store = LadderStore(str(tmp_path))
    store.save_players(
        [
            Player(player_id="A", tag="Alice", region="NY", external_id=100),
            Player(player_id="B", tag="Bob", region="NJ", external_id=200),
        ]
    )
    store.save_events(
        [Event(event_id="E1", season=2025, tier="MAJOR", name="Event One", external_slug="e1")]
    )
    return store


def test_end_to_end_scoring_for_a_major(store: LadderStore) -> None:
    client = _FakeStartGGClient({"e1": [_node(1, 100, "Alice"), _node(2, 200, "Bob")]})
    service = LadderService(client, store)

    preview = asyncio.run(service.preview_results("e1", "E1"))
    assert [(r.player_id, r.event_id, r.placement) for r in preview.results] == [
        ("A", "E1", 1),
        ("B", "E1", 2),
    ]
    assert preview.unmapped == []

    status = asyncio.run(service.rebuild_cache())
    assert status.state == "populated"
    assert status.events_processed == status.events_total == 1
    assert status.results_count == 2

    board = service.get_leaderboard(season=2025)
    assert [(r.rank, r.player_id, r.points, r.best_finish) for r in board.leaderboard] == [
        (1, "A", 1500, 1),
        (2, "B", 1200, 2),
    ]
    assert board.leaderboard[0].region == "NY"


def test_append_and_reimport_through_the_service(store: LadderStore) -> None:
    client = _FakeStartGGClient({"e1": [_node(1, 100), _node(2, 200), _node(3, 300, "Carol")]})
    service = LadderService(client, store)

    appended = asyncio.run(service.append_results("e1", "E1"))
    assert (appended.appended, appended.mapped_count, appended.unmapped_count) == (2, 2, 1)
    assert asyncio.run(service.append_results("e1", "E1")).appended == 0

    client.standings["e1"] = [_node(1, 200), _node(2, 100)]
    reimported = asyncio.run(service.reimport_results("e1", "E1"))
    assert (reimported.removed, reimported.appended) == (2, 2)
    placements = {r.player_id: r.placement for r in store.load_results()}
    assert placements == {"B": 1, "A": 2}


def test_reimport_keeps_results_when_fetch_fails(store: LadderStore) -> None:
    client = _FakeStartGGClient({"e1": [_node(1, 100)]})
    service = LadderService(client, store)
    asyncio.run(service.append_results("e1", "E1"))

    client.failing_slugs.add("e1")
    with pytest.raises(StartGGAPIError):
        asyncio.run(service.reimport_results("e1", "E1"))
    assert len(store.load_results()) == 1


def test_auto_add_registers_unmapped_players(store: LadderStore) -> None:
    client = _FakeStartGGClient(
        {"e1": [_node(1, 100), _node(2, 300, "Carol"), _node(3, None, "Anon")]}
    )
    service = LadderService(client, store)

    response = asyncio.run(service.auto_add_unmapped("e1", "E1"))
    assert [p.player_id for p in response.added] == ["p_carol"]
    assert response.skipped_without_id == 1

    unmapped = asyncio.run(service.list_unmapped("e1", "E1"))
    assert unmapped.unmapped_count == 1
    assert unmapped.unmapped[0].external_id is None


def test_import_event_upserts_appends_and_rebuilds(tmp_path) -> None:
    store = LadderStore(str(tmp_path))
    store.save_players([Player(player_id="A", tag="Alice", external_id=100)])
    client = _FakeStartGGClient({"genesis": [_node(1, 100), _node(2, 999, "Stranger")]})
    service = LadderService(client, store)

    response = asyncio.run(
        service.import_event(ImportEventRequest(event_slug="genesis", season=2025, tier="S"))
    )
    assert response.event.event_id == "t_501"
    assert response.event.name == "Tournament 1"
    assert response.event_upsert.added is True
    assert response.appended == 1
    assert response.unmapped_count == 1
    assert response.cache.state == "populated"

    board = service.get_leaderboard(season=2025)
    assert board.leaderboard[0].points == 1700

    again = asyncio.run(
        service.import_event(ImportEventRequest(event_slug="genesis", season=2025, tier="P"))
    )
    assert again.event_upsert.updated is True
    assert again.appended == 0
    assert service.get_leaderboard(season=2025).leaderboard[0].points == 2000


def test_failed_rebuild_keeps_previous_cache(store: LadderStore) -> None:
    client = _FakeStartGGClient({"e1": [_node(1, 100)], "e2": [_node(1, 200)]})
    store.upsert_event(Event(event_id="E2", season=2025, tier="A", external_slug="e2"))
    service = LadderService(client, store)

    first = asyncio.run(service.rebuild_cache())
    assert first.results_count == 2
    assert first.last_error is None

    client.failing_slugs.add("e2")
    failed = asyncio.run(service.rebuild_cache())
    assert failed.state == "populated"
    assert failed.rebuilding is False
    assert "e2" in failed.last_error
    assert failed.events_processed == 1
    assert failed.results_count == 2
    assert failed.last_rebuild_at == first.last_rebuild_at
    assert len(service.get_leaderboard().leaderboard) == 2


def test_rebuild_request_during_rebuild_is_a_noop(store: LadderStore) -> None:
    client = _FakeStartGGClient({"e1": [_node(1, 100), _node(2, 200)]})
    service = LadderService(client, store)

    async def scenario():
        client.gate = asyncio.Event()
        client.entered = asyncio.Event()
        first = asyncio.create_task(service.rebuild_cache())
        await client.entered.wait()

        during = await service.rebuild_cache()
        client.gate.set()
        after = await first
        return during, after

    during, after = asyncio.run(scenario())
    assert during.state == "rebuilding"
    assert during.rebuilding is True
    assert during.events_total == 1
    assert during.events_processed == 0
    assert during.results_count == 0
    assert client.fetches == ["e1"]
    assert after.state == "populated"
    assert after.events_processed == 1
    assert after.results_count == 2


def test_events_without_slug_are_skipped_by_rebuild(store: LadderStore) -> None:
    store.upsert_event(Event(event_id="MANUAL", season=2025, tier="C"))
    client = _FakeStartGGClient({"e1": [_node(1, 100)]})
    service = LadderService(client, store)

    status = asyncio.run(service.rebuild_cache())
    assert status.events_total == 1
    assert client.fetches == ["e1"]


def test_data_summary_reports_orphans_and_duplicates(store: LadderStore) -> None:
    store.append_results(
        [
            Result(player_id="A", event_id="E1", placement=1),
            Result(player_id="B", event_id="E1", placement=2),
            Result(player_id="A", event_id="OLD", placement=3),
        ]
    )
    store.add_player(300, "Carol")
    players = store.load_players()
    players.append(Player(player_id="A2", tag="Alice alt", external_id=100))
    store.save_players(players)

    summary = LadderService(_FakeStartGGClient({}), store).data_summary()
    assert summary.results_count == 3
    assert summary.results_by_event == {"E1": 2, "OLD": 1}
    assert summary.unknown_event_ids == ["OLD"]
    assert summary.duplicate_external_ids == {100: ["A", "A2"]}


def test_rebuild_counts_a_repeated_standing_once(store: LadderStore) -> None:
    # Same player returned twice, e.g. repeated across a page boundary.
    client = _FakeStartGGClient({"e1": [_node(1, 100, "Alice"), _node(1, 100, "Alice")]})
    service = LadderService(client, store)

    status = asyncio.run(service.rebuild_cache())
    assert status.results_count == 1

    row = service.get_leaderboard(season=2025).leaderboard[0]
    assert (row.player_id, row.points, row.events) == ("A", 1500, 1)


def test_undecodable_record_file_is_recorded_in_rebuild_status(store: LadderStore) -> None:
    client = _FakeStartGGClient({"e1": [_node(1, 100)]})
    service = LadderService(client, store)
    assert asyncio.run(service.rebuild_cache()).results_count == 1

    (store.data_dir / "players.json").write_bytes(b"[\xff]")
    status = asyncio.run(service.rebuild_cache())

    assert status.rebuilding is False
    assert status.last_error is not None
    assert "UTF-8" in status.last_error
    assert status.results_count == 1
