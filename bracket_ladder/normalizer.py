from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .models import ExportedStanding, Result, StandingNode, UnmappedEntry


@dataclass(frozen=True)
class ResolvedIdentity:
    external_id: int | None
    gamer_tag: str | None
    entrant_name: str | None
    entrant_id: int | None


@dataclass
class NormalizedStandings:
    mapped: list[Result] = field(default_factory=list)
    unmapped: list[UnmappedEntry] = field(default_factory=list)


def resolve_identity(node: StandingNode) -> ResolvedIdentity:
    """Pull the competitor identity out of a standings node.

    Only the first participant of an entrant is considered. The display name
    falls back from the player's gamer tag to the participant's tag and then to
    the entrant name.
    """
    entrant = node.entrant
    participant = None
    if entrant is not None and entrant.participants:
        participant = entrant.participants[0]
    player = participant.player if participant is not None else None

    external_id = player.id if player is not None else None
    gamer_tag = (
        (player.gamer_tag if player is not None else None)
        or (participant.gamer_tag if participant is not None else None)
        or (entrant.name if entrant is not None else None)
    )
    return ResolvedIdentity(
        external_id=external_id,
        gamer_tag=gamer_tag or None,
        entrant_name=entrant.name if entrant is not None else None,
        entrant_id=entrant.id if entrant is not None else None,
    )


def normalize_standings(
    nodes: Sequence[StandingNode],
    event_id: str,
    identity_map: Mapping[int, str],
) -> NormalizedStandings:
    normalized = NormalizedStandings()
    for node in nodes:
        identity = resolve_identity(node)
        player_id = (
            identity_map.get(identity.external_id) if identity.external_id is not None else None
        )
        if player_id:
            normalized.mapped.append(
                Result(player_id=player_id, event_id=event_id, placement=node.placement)
            )
        else:
            normalized.unmapped.append(
                UnmappedEntry(
                    external_id=identity.external_id,
                    gamer_tag=identity.gamer_tag,
                    entrant_name=identity.entrant_name,
                    placement=node.placement,
                )
            )
    return normalized


def export_standings(nodes: Sequence[StandingNode]) -> list[ExportedStanding]:
    exported: list[ExportedStanding] = []
    for node in nodes:
        identity = resolve_identity(node)
        exported.append(
            ExportedStanding(
                placement=node.placement,
                external_id=identity.external_id,
                gamer_tag=identity.gamer_tag,
                entrant_name=identity.entrant_name,
                entrant_id=identity.entrant_id,
            )
        )
    return exported
