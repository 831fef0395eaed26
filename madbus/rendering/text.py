"""Plain-text departure listings for the terminal."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable

from madbus.data.schedule_store import Stop
from madbus.logic.merger import DepartureBoard, DisplayRow

NO_MORE_BUSES = "[No more buses today]"
NO_MATCHING_STOPS = "[No matching stops]"


def format_clock(dt: datetime) -> str:
    """12-hour clock padded like ``%l:%M %p``, e.g. `` 8:05 AM``."""
    value = dt.strftime("%I:%M %p")
    return " " + value[1:] if value.startswith("0") else value


def _status(row: DisplayRow) -> str:
    if not row.is_live:
        return "scheduled"
    delay = row.delay_minutes or 0
    if delay == 0:
        return f"live, on time (sched {format_clock(row.scheduled_time).strip()})"
    return f"live, {delay:+d} min (sched {format_clock(row.scheduled_time).strip()})"


def format_row(row: DisplayRow, day: str | None = None) -> str:
    line = f"{format_clock(row.effective_time)}  {row.route_id:<4} {row.headsign:<28} {_status(row)}"
    return (line if day is None else f"{day:<4}{line}").rstrip()


def _day_label(row: DisplayRow, listing_date: date) -> str:
    return "" if row.effective_time.date() == listing_date else row.effective_time.strftime("%a")


def format_board(board: DepartureBoard) -> str:
    """Render a board as the stop name, an optional warning, and one line per departure.

    Once any row falls on a different calendar day than the listing date, every
    row gets a leading weekday column, blank for same-day rows.
    """
    lines = [board.stop_name or board.stop_id]
    if board.banner:
        lines.append(f"! {board.banner}")
    listing_date = board.listing_date
    if listing_date is None or all(row.effective_time.date() == listing_date for row in board.rows):
        lines.extend(format_row(row) for row in board.rows)
    else:
        lines.extend(format_row(row, _day_label(row, listing_date)) for row in board.rows)
    if not board.rows:
        lines.append(NO_MORE_BUSES)
    return "\n".join(lines)


def format_search(stops: Iterable[Stop]) -> str:
    lines = [f"{stop.stop_id} {stop.stop_name}" for stop in stops]
    return "\n".join(lines) if lines else NO_MATCHING_STOPS


__all__ = ["NO_MATCHING_STOPS", "NO_MORE_BUSES", "format_board", "format_clock", "format_row", "format_search"]
