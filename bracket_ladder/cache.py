from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from .models import CacheStatus, Result
from .startgg_client import StartGGAPIError
from .store import RecordStoreError

logger = logging.getLogger(__name__)

_REBUILD_ERRORS = (StartGGAPIError, RecordStoreError)


@dataclass(frozen=True)
class RebuildProgress:
    start: Callable[[int], None]
    advance: Callable[[], None]


RebuildFn = Callable[[RebuildProgress], Awaitable[Sequence[Result]]]


class ResultsCache:
    """In-memory results projection plus its rebuild status.

    Only one rebuild runs at a time; a request that arrives mid-rebuild gets
    the current status back and does nothing. The cached list is replaced only
    when a rebuild finishes cleanly, so readers keep seeing the last good data
    after a failure.
    """

    def __init__(self) -> None:
        self._results: tuple[Result, ...] = ()
        self._populated = False
        self._rebuilding = False
        self._last_rebuild_at: datetime | None = None
        self._last_error: str | None = None
        self._events_processed = 0
        self._events_total = 0

    @property
    def results(self) -> tuple[Result, ...]:
        return self._results

    @property
    def rebuilding(self) -> bool:
        return self._rebuilding

    def _start_progress(self, total: int) -> None:
        self._events_total = total

    def _advance(self) -> None:
        self._events_processed += 1

    def status(self) -> CacheStatus:
        if self._rebuilding:
            state = "rebuilding"
        elif self._populated:
            state = "populated"
        else:
            state = "empty"
        return CacheStatus(
            state=state,
            rebuilding=self._rebuilding,
            last_rebuild_at=self._last_rebuild_at,
            last_error=self._last_error,
            events_processed=self._events_processed,
            events_total=self._events_total,
            results_count=len(self._results),
        )

    async def rebuild(self, build: RebuildFn) -> CacheStatus:
        if self._rebuilding:
            logger.info("Cache rebuild already in progress; ignoring request")
            return self.status()

        self._rebuilding = True
        self._last_error = None
        self._events_processed = 0
        self._events_total = 0
        try:
            built = await build(RebuildProgress(start=self._start_progress, advance=self._advance))
        except _REBUILD_ERRORS as exc:
            self._last_error = str(exc)
            logger.warning("Cache rebuild failed after %s events: %s", self._events_processed, exc)
        else:
            self._results = tuple(built)
            self._populated = True
            self._last_rebuild_at = datetime.now(timezone.utc)
            logger.info(
                "Cache rebuilt from %s events (%s results)",
                self._events_processed,
                len(self._results),
            )
        finally:
            self._rebuilding = False
        return self.status()
