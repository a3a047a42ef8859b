from __future__ import annotations

import argparse
import asyncio
import logging

from .config import Settings, get_settings
from .models import ImportEventRequest
from .scoring import ScoringModel
from .service import LadderService
from .startgg_client import StartGGAPIError, StartGGClient
from .store import LadderStore, RecordStoreError


def _build_service(settings: Settings, client: StartGGClient) -> LadderService:
    return LadderService(
        client,
        LadderStore(settings.data_dir),
        scoring=ScoringModel.with_overrides(
            settings.tier_multipliers, settings.default_tier_multiplier
        ),
        default_tier=settings.default_tier,
    )


def _print_status(service: LadderService) -> None:
    status = service.cache_status()
    print(
        f"Cache: {status.state} | events {status.events_processed}/{status.events_total} "
        f"| results={status.results_count}"
    )
    if status.last_error:
        print(f"Last error: {status.last_error}")


async def _run_leaderboard_command(season: int | None, top: int) -> None:
    settings = get_settings()
    async with StartGGClient(settings) as client:
        service = _build_service(settings, client)
        await service.rebuild_cache()
        _print_status(service)
        board = service.get_leaderboard(season=season)

    print(
        f"\nSeason: {board.season or 'all'} | events={board.events_known} "
        f"| results used={board.results_used} | players={board.players_known}"
    )
    if not board.leaderboard:
        print("No ranked players.")
        return

    print(f"{'Rank':<5} {'Player':<24} {'Region':<10} {'Points':>8} {'Events':>7} {'Best':>5}")
    print("-" * 64)
    for row in board.leaderboard[:top]:
        print(
            f"{row.rank:<5} "
            f"{row.tag[:24]:<24} "
            f"{row.region[:10]:<10} "
            f"{row.points:>8} "
            f"{row.events:>7} "
            f"{(row.best_finish if row.best_finish is not None else '-'):>5}"
        )


async def _run_import_command(args: argparse.Namespace) -> None:
    settings = get_settings()
    request = ImportEventRequest(event_slug=args.slug, season=args.season, tier=args.tier)
    async with StartGGClient(settings) as client:
        service = _build_service(settings, client)
        result = await service.import_event(request)

    action = "added" if result.event_upsert.added else "updated"
    print(f"Event {result.event.event_id} ({result.event.name}) {action}.")
    print(
        f"Appended {result.appended} of {result.mapped_count} mapped results; "
        f"{result.unmapped_count} unmapped."
    )
    for entry in result.unmapped:
        print(f"  #{entry.placement:<4} {entry.gamer_tag or '-':<24} id={entry.external_id}")


async def _run_unmapped_command(slug: str, event_id: str) -> None:
    settings = get_settings()
    async with StartGGClient(settings) as client:
        service = _build_service(settings, client)
        result = await service.list_unmapped(slug, event_id)

    print(f"Unmapped: {result.unmapped_count}")
    print(f"{'Place':<6} {'Gamer tag':<26} start.gg id")
    print("-" * 50)
    for entry in result.unmapped:
        print(
            f"{entry.placement:<6} "
            f"{(entry.gamer_tag or entry.entrant_name or '-')[:26]:<26} "
            f"{entry.external_id if entry.external_id is not None else '-'}"
        )


async def _run_rebuild_command() -> None:
    settings = get_settings()
    async with StartGGClient(settings) as client:
        service = _build_service(settings, client)
        await service.rebuild_cache()
        _print_status(service)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Community leaderboard built from start.gg standings."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    board_parser = sub.add_parser("leaderboard", help="Rebuild the cache and print the leaderboard")
    board_parser.add_argument("--season", type=int, default=None)
    board_parser.add_argument("--top", type=int, default=50)

    import_parser = sub.add_parser("import-event", help="Import a start.gg event's standings")
    import_parser.add_argument("slug", help="Event slug, e.g. tournament/x/event/ultimate-singles")
    import_parser.add_argument("--season", type=int, required=True)
    import_parser.add_argument("--tier", required=True)

    unmapped_parser = sub.add_parser("unmapped", help="List standings with no registered player")
    unmapped_parser.add_argument("slug")
    unmapped_parser.add_argument("event_id")

    sub.add_parser("rebuild", help="Rebuild the results cache from every known event")

    args = parser.parse_args()
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "leaderboard":
            asyncio.run(_run_leaderboard_command(season=args.season, top=args.top))
            return
        if args.command == "import-event":
            asyncio.run(_run_import_command(args))
            return
        if args.command == "unmapped":
            asyncio.run(_run_unmapped_command(args.slug, args.event_id))
            return
        if args.command == "rebuild":
            asyncio.run(_run_rebuild_command())
            return
        parser.error(f"Unsupported command: {args.command}")
    except StartGGAPIError as exc:
        print(f"start.gg API error: {exc}")
    except RecordStoreError as exc:
        print(f"Data error: {exc}")


if __name__ == "__main__":
    main()
