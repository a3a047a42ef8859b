from bracket_ladder.identity import build_identity_map, find_duplicate_external_ids
from bracket_ladder.models import Player, StandingNode
from bracket_ladder.normalizer import export_standings, normalize_standings, resolve_identity


def _node(placement, player_id=None, player_tag=None, participant_tag=None, entrant_name=None):
    player = None
    if player_id is not None or player_tag is not None:
        player = {"id": player_id, "gamerTag": player_tag}
    return StandingNode.model_validate(
        {
            "placement": placement,
            "entrant": {
                "id": 9000 + placement,
                "name": entrant_name,
                "participants": [{"id": 1, "gamerTag": participant_tag, "player": player}],
            },
        }
    )


def test_identity_map_skips_players_without_external_id() -> None:
    players = [
        Player(player_id="p_alice", tag="Alice", external_id=100),
        Player(player_id="p_bob", tag="Bob"),
    ]
    assert build_identity_map(players) == {100: "p_alice"}


def test_identity_map_duplicates_are_last_write_wins_and_reported() -> None:
    players = [
        Player(player_id="p_one", tag="One", external_id=7),
        Player(player_id="p_two", tag="Two", external_id=7),
    ]
    assert build_identity_map(players) == {7: "p_two"}
    assert find_duplicate_external_ids(players) == {7: ["p_one", "p_two"]}


def test_resolve_identity_prefers_player_then_participant_then_entrant() -> None:
    assert resolve_identity(_node(1, 5, "Player", "Part", "Entrant")).gamer_tag == "Player"
    assert resolve_identity(_node(1, 5, None, "Part", "Entrant")).gamer_tag == "Part"
    assert resolve_identity(_node(1, None, None, None, "Entrant")).gamer_tag == "Entrant"
    assert resolve_identity(_node(1)).gamer_tag is None


def test_resolve_identity_tolerates_missing_entrant() -> None:
    identity = resolve_identity(StandingNode.model_validate({"placement": 4, "entrant": None}))
    assert identity.external_id is None
    assert identity.gamer_tag is None
    assert identity.entrant_id is None


def test_normalize_partitions_every_node() -> None:
    nodes = [
        _node(1, 100, "Alice"),
        _node(2, 200, "Bob"),
        _node(3, 300, "Carol"),
        _node(4, None, None, None, "Team Nobody"),
        StandingNode.model_validate({"placement": 5, "entrant": {"participants": []}}),
    ]
    normalized = normalize_standings(nodes, "E1", {100: "p_alice", 200: "p_bob"})

    assert len(normalized.mapped) + len(normalized.unmapped) == len(nodes)
    assert [(r.player_id, r.event_id, r.placement) for r in normalized.mapped] == [
        ("p_alice", "E1", 1),
        ("p_bob", "E1", 2),
    ]
    assert [(u.external_id, u.gamer_tag, u.placement) for u in normalized.unmapped] == [
        (300, "Carol", 3),
        (None, "Team Nobody", 4),
        (None, None, 5),
    ]


def test_export_standings_counts_missing_ids() -> None:
    exported = export_standings([_node(1, 100, "Alice"), _node(2, None, None, "Ghost")])
    assert [row.external_id for row in exported] == [100, None]
    assert exported[0].entrant_id == 9001
    assert exported[1].gamer_tag == "Ghost"
