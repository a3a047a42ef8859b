from __future__ import annotations

from collections.abc import Mapping
import logging
import re
from typing import Any

import httpx
from pydantic import ValidationError

from .config import Settings
from .models import ExternalEvent, StandingNode, TournamentEventSummary

logger = logging.getLogger(__name__)

_TOURNAMENT_URL_RE = re.compile(r"start\.gg/tournament/([^/?#]+)", re.IGNORECASE)

GET_EVENT = """
query GetEvent($slug: String!) {
  event(slug: $slug) {
    id
    name
    tournament {
      id
      name
    }
  }
}
"""

GET_STANDINGS = """
query EventStandings($eventId: ID!, $page: Int!, $perPage: Int!) {
  event(id: $eventId) {
    id
    name
    standings(query: { page: $page, perPage: $perPage }) {
      pageInfo {
        totalPages
      }
      nodes {
        placement
        entrant {
          id
          name
          participants {
            id
            gamerTag
            player {
              id
              gamerTag
            }
          }
        }
      }
    }
  }
}
"""

GET_TOURNAMENT_EVENTS = """
query TournamentEvents($slug: String!) {
  tournament(slug: $slug) {
    id
    name
    events {
      id
      name
      slug
    }
  }
}
"""


class StartGGAPIError(RuntimeError):
    pass


def extract_tournament_slug(url: str) -> str | None:
    """Return ``tournament/<name>`` for a start.gg tournament URL, if it is one."""
    match = _TOURNAMENT_URL_RE.search(str(url or ""))
    return f"tournament/{match.group(1)}" if match else None


class StartGGClient:
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._client = httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "StartGGClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _query(self, query: str, variables: Mapping[str, Any]) -> dict[str, Any]:
        token = self._settings.startgg_token.strip()
        if not token:
            raise StartGGAPIError(
                "STARTGG_TOKEN is not configured. Set STARTGG_TOKEN=... in the environment or .env."
            )

        try:
            response = await self._client.post(
                self._settings.startgg_api_url,
                json={"query": query, "variables": dict(variables)},
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise StartGGAPIError(f"start.gg request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            errors = payload.get("errors") if isinstance(payload, dict) else None
            raise StartGGAPIError(
                f"start.gg request failed ({response.status_code}): {errors or response.text[:200]}"
            )
        if not isinstance(payload, dict):
            raise StartGGAPIError("start.gg returned non-JSON payload")
        if payload.get("errors"):
            raise StartGGAPIError(f"start.gg API error: {payload['errors']}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise StartGGAPIError("start.gg response is missing 'data'")
        return data

    async def get_event(self, slug: str) -> ExternalEvent:
        data = await self._query(GET_EVENT, {"slug": slug})
        event = data.get("event")
        if not isinstance(event, dict) or event.get("id") is None:
            raise StartGGAPIError(f"start.gg event not found for slug {slug!r}")

        tournament = event.get("tournament") or {}
        return ExternalEvent(
            id=int(event["id"]),
            name=event.get("name"),
            tournament_id=tournament.get("id"),
            tournament_name=tournament.get("name"),
        )

    async def get_standings_page(
        self, event_id: int, page: int, per_page: int
    ) -> tuple[list[StandingNode], int | None]:
        data = await self._query(
            GET_STANDINGS,
            {"eventId": event_id, "page": page, "perPage": per_page},
        )
        standings = (data.get("event") or {}).get("standings") or {}
        raw_nodes = standings.get("nodes") or []
        total_pages = (standings.get("pageInfo") or {}).get("totalPages")

        try:
            nodes = [StandingNode.model_validate(node) for node in raw_nodes]
        except ValidationError as exc:
            raise StartGGAPIError(
                f"start.gg returned malformed standings for event {event_id} page {page}: {exc}"
            ) from exc
        return nodes, total_pages

    async def fetch_all_standings(
        self, event_id: int, per_page: int | None = None
    ) -> list[StandingNode]:
        page_size = per_page or self._settings.standings_page_size
        page = 1
        collected: list[StandingNode] = []

        while True:
            nodes, total_pages = await self.get_standings_page(event_id, page, page_size)
            logger.debug(
                "Fetched standings page %s for event %s (%s nodes)", page, event_id, len(nodes)
            )
            if not nodes:
                break
            collected.extend(nodes)

            if total_pages is not None:
                if page >= total_pages:
                    break
            elif len(nodes) < page_size:
                # No page count reported; a short page is the last one.
                break
            page += 1

        return collected

    async def get_tournament_events(
        self, tournament_slug: str
    ) -> tuple[str | None, list[TournamentEventSummary]]:
        data = await self._query(GET_TOURNAMENT_EVENTS, {"slug": tournament_slug})
        tournament = data.get("tournament") or {}
        events = [
            TournamentEventSummary(id=int(row["id"]), name=row.get("name"), slug=row.get("slug"))
            for row in tournament.get("events") or []
            if isinstance(row, dict) and row.get("id") is not None
        ]
        return tournament.get("name"), events
