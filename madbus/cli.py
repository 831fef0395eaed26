"""Command-line front-end: ``madbus stop`` and ``madbus search``."""

from __future__ import annotations

import argparse
from datetime import datetime, time, timedelta
import logging
import sys
from typing import Sequence

from madbus.config import AppConfig, ScheduleConfig, load_config
from madbus.data.live_client import BusTimeClient, fetch_live
from madbus.data.outcome import Outcome, fatal, ok
from madbus.data.schedule_store import DataLoadError, ScheduleTable, load
from madbus.logging_setup import configure_logging
from madbus.logic.merger import build_board
from madbus.rendering import format_board, format_search, save_board_image

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2


def _clock(value: str) -> time:
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Could not parse time {value!r}; expected HH:MM") from exc


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected a whole number, got {value!r}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive number, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="madbus", description="Info about scheduled buses.")
    parser.add_argument("--config", help="Path to a YAML config file")
    subparsers = parser.add_subparsers(dest="command")

    stop = subparsers.add_parser("stop", help="List the next scheduled buses at the given stop")
    stop.add_argument("stop_id", metavar="STOP", help="The stop ID")
    stop.add_argument(
        "-a",
        "--after",
        type=_clock,
        help="List buses at or after the given time today (HH:MM, 24-hour clock)",
    )
    stop.add_argument("-n", "--next", type=_positive_int, help="List the next N buses")
    stop.add_argument("-r", "--route", help="Only list buses on this route")
    stop.add_argument("--no-live", action="store_true", help="Skip the real-time BusTime feed")
    stop.add_argument("--image", metavar="PATH", help="Also write the board as a PNG image")

    search = subparsers.add_parser(
        "search", help="Search for all bus stops whose name contains the given string"
    )
    search.add_argument("text", metavar="STR", help="The string to search for")
    return parser


def load_schedule(config: ScheduleConfig) -> Outcome:
    """Load the static schedule; a missing or unreadable directory is fatal."""
    try:
        return ok(load(config.data_dir))
    except DataLoadError as exc:
        return fatal(str(exc))


def run_stop(args: argparse.Namespace, config: AppConfig, table: ScheduleTable, now: datetime) -> int:
    service_date = now.date()
    not_before = datetime.combine(service_date, args.after) if args.after else now

    # Reach back by the match window so late-running buses still pick up their estimate.
    tolerance = timedelta(minutes=config.live.match_tolerance_minutes)
    cutoff = not_before - tolerance
    after = cutoff.time() if cutoff.date() == service_date else None

    entries = table.departures(args.stop_id, on=service_date, after=after, route_filter=args.route)
    # Trips past midnight on the previous service day still depart on this calendar day.
    carried_over = [
        entry
        for entry in table.departures(
            args.stop_id, on=service_date - timedelta(days=1), route_filter=args.route
        )
        if entry.overnight
    ]

    live = None
    if not args.no_live and config.live.enabled:
        client = BusTimeClient(
            api_key=config.live.api_key,
            api_base=config.live.api_base,
            timeout_seconds=config.live.timeout_seconds,
        )
        live = fetch_live(client, args.stop_id)

    stop = table.stop(args.stop_id)
    board = build_board(
        stop_id=args.stop_id,
        stop_name=stop.stop_name if stop else args.stop_id,
        entries=entries,
        live=live,
        service_date=service_date,
        tolerance_minutes=config.live.match_tolerance_minutes,
        not_before=not_before,
        limit=args.next,
        carried_over=carried_over,
    )
    print(format_board(board))

    if args.image:
        path = save_board_image(board, args.image)
        logger.info("Wrote board image to %s", path)
    return EXIT_OK


def main(argv: Sequence[str] | None = None, now: datetime | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return EXIT_USAGE

    try:
        config = load_config(args.config)
    except ValueError as exc:
        print(f"madbus: {exc}", file=sys.stderr)
        return EXIT_FATAL
    configure_logging(config.log.level)

    schedule = load_schedule(config.schedule)
    if schedule.is_fatal:
        print(f"madbus: {schedule.reason}", file=sys.stderr)
        return EXIT_FATAL
    table: ScheduleTable = schedule.value

    if args.command == "search":
        print(format_search(table.search(args.text)))
        return EXIT_OK
    return run_stop(args, config, table, now or datetime.now())


__all__ = ["build_parser", "load_schedule", "main", "run_stop"]
