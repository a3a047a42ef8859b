from __future__ import annotations

from collections.abc import Iterable
import logging

from .models import Player

logger = logging.getLogger(__name__)


def build_identity_map(players: Iterable[Player]) -> dict[int, str]:
    """Map start.gg player ids to internal player ids.

    Built from scratch for each sync. If two players share an external id the
    later record wins and a warning is logged; see `find_duplicate_external_ids`.
    """
    lookup: dict[int, str] = {}
    for player in players:
        if player.external_id is None:
            continue
        previous = lookup.get(player.external_id)
        if previous is not None and previous != player.player_id:
            logger.warning(
                "External id %s is shared by players %s and %s; using %s",
                player.external_id,
                previous,
                player.player_id,
                player.player_id,
            )
        lookup[player.external_id] = player.player_id
    return lookup


def find_duplicate_external_ids(players: Iterable[Player]) -> dict[int, list[str]]:
    owners: dict[int, list[str]] = {}
    for player in players:
        if player.external_id is not None:
            owners.setdefault(player.external_id, []).append(player.player_id)
    return {external_id: ids for external_id, ids in owners.items() if len(ids) > 1}
