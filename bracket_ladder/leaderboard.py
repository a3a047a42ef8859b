from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
import math

from .models import Event, LeaderboardResponse, LeaderboardRow, Player, Result
from .scoring import ScoringModel


@dataclass
class _PlayerTotals:
    points: int = 0
    events: int = 0
    best_finish: int | None = None


def _sort_key(row: LeaderboardRow) -> tuple[float, float, int, str]:
    best = row.best_finish if row.best_finish is not None else math.inf
    return (-row.points, best, -row.events, row.tag)


def build_leaderboard(
    results: Iterable[Result],
    events: Sequence[Event],
    players: Sequence[Player],
    scoring: ScoringModel,
    season: int | None = None,
    default_tier: str = "B",
) -> LeaderboardResponse:
    """Aggregate cached results into a ranked leaderboard.

    Results for events that are not registered are ignored. Ordering is points
    (high first), best finish (low first, none last), events played (more
    first), then tag. Ranks are sequential: players tied on every key still get
    distinct ranks in tag order.
    """
    event_by_id = {event.event_id: event for event in events}
    player_by_id = {player.player_id: player for player in players}

    totals: dict[str, _PlayerTotals] = {}
    results_used = 0
    for result in results:
        event = event_by_id.get(result.event_id)
        if event is None:
            continue
        if season is not None and event.season != season:
            continue

        results_used += 1
        tier = event.tier or default_tier
        agg = totals.setdefault(result.player_id, _PlayerTotals())
        agg.points += scoring.points(result.placement, tier)
        agg.events += 1
        if agg.best_finish is None or result.placement < agg.best_finish:
            agg.best_finish = result.placement

    rows: list[LeaderboardRow] = []
    for player_id, agg in totals.items():
        player = player_by_id.get(player_id)
        rows.append(
            LeaderboardRow(
                rank=0,
                player_id=player_id,
                tag=player.tag if player is not None else player_id,
                region=player.region if player is not None else "",
                points=agg.points,
                events=agg.events,
                best_finish=agg.best_finish,
            )
        )

    rows.sort(key=_sort_key)
    for rank, row in enumerate(rows, start=1):
        row.rank = rank

    return LeaderboardResponse(
        season=season,
        events_known=len(events),
        results_used=results_used,
        players_known=len(players),
        players_ranked=len(rows),
        leaderboard=rows,
    )
