from __future__ import annotations

from collections.abc import Iterable, Sequence
import json
import logging
import os
from pathlib import Path
import re
import tempfile
import threading
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from .models import Event, Player, Result

logger = logging.getLogger(__name__)

_PLAYERS_FILE = "players.json"
_EVENTS_FILE = "events.json"
_RESULTS_FILE = "results.json"
_SLUG_RE = re.compile(r"[^a-z0-9]+")

RecordT = TypeVar("RecordT", bound=BaseModel)


class RecordStoreError(RuntimeError):
    pass


def _result_key(result: Result) -> tuple[str, str]:
    return (result.player_id, result.event_id)


def _player_id_for_tag(tag: str, used: set[str]) -> str:
    base = _SLUG_RE.sub("_", tag.lower()).strip("_") or "player"
    candidate = f"p_{base}"
    suffix = 2
    while candidate in used:
        candidate = f"p_{base}_{suffix}"
        suffix += 1
    return candidate


class LadderStore:
    """JSON file store for players, events and results.

    Each record set lives in its own file holding a JSON array. A missing or
    blank file reads as an empty set; anything else that is not a list of valid
    records raises `RecordStoreError`. Writes replace the whole file atomically.
    """

    def __init__(self, data_dir: str):
        self._data_dir = Path(data_dir).expanduser()
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _load(self, filename: str, model: type[RecordT]) -> list[RecordT]:
        path = self._data_dir / filename
        if not path.exists():
            return []
        try:
            raw = path.read_text(encoding="utf-8").strip()
        except UnicodeDecodeError as exc:
            raise RecordStoreError(f"{path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise RecordStoreError(f"{path} could not be read: {exc}") from exc
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise RecordStoreError(f"{path} is not valid JSON: {exc}") from exc
        if not isinstance(parsed, list):
            raise RecordStoreError(f"{path} must be a JSON array")

        try:
            return [model.model_validate(row) for row in parsed]
        except ValidationError as exc:
            raise RecordStoreError(f"{path} contains an invalid record: {exc}") from exc

    def _save(self, filename: str, records: Sequence[BaseModel]) -> None:
        path = self._data_dir / filename
        payload = json.dumps(
            [record.model_dump(mode="json") for record in records], indent=2, ensure_ascii=False
        )
        fd, tmp_name = tempfile.mkstemp(prefix=f".{filename}.", dir=self._data_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load_players(self) -> list[Player]:
        with self._lock:
            return self._load(_PLAYERS_FILE, Player)

    def save_players(self, players: Sequence[Player]) -> None:
        with self._lock:
            self._save(_PLAYERS_FILE, players)

    def load_events(self) -> list[Event]:
        with self._lock:
            return self._load(_EVENTS_FILE, Event)

    def save_events(self, events: Sequence[Event]) -> None:
        with self._lock:
            self._save(_EVENTS_FILE, events)

    def load_results(self) -> list[Result]:
        with self._lock:
            return self._load(_RESULTS_FILE, Result)

    def save_results(self, results: Sequence[Result]) -> None:
        with self._lock:
            self._save(_RESULTS_FILE, results)

    def append_results(self, results: Iterable[Result]) -> int:
        """Append results, skipping any (player_id, event_id) already stored.

        An existing placement is never overwritten here; use `reimport_results`.
        """
        with self._lock:
            existing = self._load(_RESULTS_FILE, Result)
            appended = merge_results(existing, results)
            self._save(_RESULTS_FILE, existing)
        return appended

    def reimport_results(self, event_id: str, results: Iterable[Result]) -> tuple[int, int]:
        with self._lock:
            existing = self._load(_RESULTS_FILE, Result)
            kept = [result for result in existing if result.event_id != event_id]
            removed = len(existing) - len(kept)
            appended = merge_results(kept, results)
            self._save(_RESULTS_FILE, kept)
        logger.info(
            "Reimported event %s: removed %s results, appended %s", event_id, removed, appended
        )
        return removed, appended

    def upsert_event(self, event: Event) -> bool:
        """Insert or merge an event keyed on event_id. Returns True when added."""
        with self._lock:
            events = self._load(_EVENTS_FILE, Event)
            for idx, current in enumerate(events):
                if current.event_id == event.event_id:
                    events[idx] = current.model_copy(update=event.model_dump(exclude_unset=True))
                    added = False
                    break
            else:
                events.append(event)
                added = True
            self._save(_EVENTS_FILE, events)
        return added

    def add_player(self, external_id: int, tag: str, region: str = "") -> tuple[Player, bool]:
        """Register a player for a start.gg id. Returns (player, created)."""
        with self._lock:
            players = self._load(_PLAYERS_FILE, Player)
            for player in players:
                if player.external_id == external_id:
                    return player, False

            used = {player.player_id for player in players}
            player = Player(
                player_id=_player_id_for_tag(tag, used),
                tag=tag,
                region=region or "",
                external_id=external_id,
            )
            players.append(player)
            self._save(_PLAYERS_FILE, players)
        logger.info("Added player %s (%s) for external id %s", player.player_id, tag, external_id)
        return player, True


def merge_results(existing: list[Result], incoming: Iterable[Result]) -> int:
    keys = {_result_key(result) for result in existing}
    appended = 0
    for result in incoming:
        key = _result_key(result)
        if key in keys:
            continue
        existing.append(result)
        keys.add(key)
        appended += 1
    return appended
