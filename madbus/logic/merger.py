"""Overlay live BusTime estimates onto scheduled departures."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Sequence

from madbus.data.live_client import LiveArrival
from madbus.data.outcome import Outcome
from madbus.data.schedule_store import ScheduleEntry

DEFAULT_TOLERANCE_MINUTES = 30


@dataclass(frozen=True)
class DisplayRow:
    """One departure line: scheduled time plus an optional live estimate."""

    route_id: str
    scheduled_time: datetime
    estimated_time: datetime | None = None
    headsign: str = ""

    @property
    def is_live(self) -> bool:
        return self.estimated_time is not None

    @property
    def effective_time(self) -> datetime:
        return self.estimated_time if self.estimated_time is not None else self.scheduled_time

    @property
    def delay_minutes(self) -> int | None:
        if self.estimated_time is None:
            return None
        return round((self.estimated_time - self.scheduled_time).total_seconds() / 60)


@dataclass(frozen=True)
class DepartureBoard:
    """Rows for a single stop, ready for text or image rendering."""

    stop_id: str
    stop_name: str
    rows: list[DisplayRow]
    static_only: bool
    banner: str | None = None
    listing_date: date | None = None


def _align(
    slots: Sequence[tuple[int, datetime]],
    arrivals: Sequence[LiveArrival],
    tolerance: timedelta,
) -> dict[int, LiveArrival]:
    """Order-preserving pairing of time-sorted slots and arrivals.

    Maximises the number of pairs within ``tolerance``, then minimises the
    total gap. Pairs never cross, so a later estimate cannot skip an earlier
    unmatched departure and leave it behind.
    """
    n, m = len(slots), len(arrivals)
    # score[i][j]: best (pairs, -gap seconds) for slots[i:] against arrivals[j:]
    score = [[(0, 0.0)] * (m + 1) for _ in range(n + 1)]

    def paired(i: int, j: int) -> tuple[int, float] | None:
        gap = abs(slots[i][1] - arrivals[j].estimated_time)
        if gap > tolerance:
            return None
        count, cost = score[i + 1][j + 1]
        return (count + 1, cost - gap.total_seconds())

    for i in range(n - 1, -1, -1):
        for j in range(m - 1, -1, -1):
            best = max(score[i + 1][j], score[i][j + 1])
            pair = paired(i, j)
            if pair is not None and pair >= best:
                best = pair
            score[i][j] = best

    matched: dict[int, LiveArrival] = {}
    i = j = 0
    while i < n and j < m:
        if paired(i, j) == score[i][j]:
            matched[slots[i][0]] = arrivals[j]
            i += 1
            j += 1
        elif score[i + 1][j] == score[i][j]:
            i += 1
        else:
            j += 1
    return matched


def _match(
    entries: Sequence[ScheduleEntry],
    departures: Sequence[datetime],
    arrivals: Sequence[LiveArrival],
    tolerance: timedelta,
) -> dict[int, LiveArrival]:
    """Pair each live arrival with at most one entry sharing its stop and route."""
    slots: dict[tuple[str, str], list[tuple[int, datetime]]] = defaultdict(list)
    for index, (entry, when) in enumerate(zip(entries, departures)):
        slots[(entry.stop_id, entry.route_id)].append((index, when))
    pending: dict[tuple[str, str], list[LiveArrival]] = defaultdict(list)

    matched: dict[int, LiveArrival] = {}
    for arrival in sorted(arrivals, key=lambda a: a.estimated_time):
        key = (arrival.stop_id, arrival.route_id)
        same_trip = [
            (index, when)
            for index, when in slots.get(key, ())
            if arrival.trip_id
            and entries[index].trip_id == arrival.trip_id
            and index not in matched
            and abs(when - arrival.estimated_time) <= tolerance
        ]
        if same_trip:
            matched[same_trip[0][0]] = arrival
        else:
            pending[key].append(arrival)

    for key, waiting in pending.items():
        open_slots = sorted(
            ((index, when) for index, when in slots.get(key, ()) if index not in matched),
            key=lambda slot: (slot[1], slot[0]),
        )
        matched.update(_align(open_slots, waiting, tolerance))
    return matched


def render(
    schedule_entries: Sequence[ScheduleEntry],
    live_arrivals: Sequence[LiveArrival] | None = None,
    service_date: date | None = None,
    tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES,
    carried_over: Sequence[ScheduleEntry] = (),
) -> list[DisplayRow]:
    """Merge scheduled entries with live estimates, ordered by effective time.

    ``carried_over`` holds past-midnight entries of the previous service day;
    they are placed relative to ``service_date - 1``. Live arrivals pair with
    entries of the same stop and route within ``tolerance_minutes``, trip id
    first and otherwise in schedule order. Unpaired arrivals are ignored and
    every row comes from exactly one schedule entry.
    """
    day = service_date or date.today()
    entries = list(carried_over) + list(schedule_entries)
    departures = [entry.at(day - timedelta(days=1)) for entry in carried_over]
    departures += [entry.at(day) for entry in schedule_entries]

    matched: dict[int, LiveArrival] = {}
    if live_arrivals:
        matched = _match(entries, departures, live_arrivals, timedelta(minutes=tolerance_minutes))

    rows = []
    for index, (entry, when) in enumerate(zip(entries, departures)):
        arrival = matched.get(index)
        rows.append(
            DisplayRow(
                route_id=entry.route_id,
                scheduled_time=when,
                estimated_time=arrival.estimated_time if arrival else None,
                headsign=entry.headsign or (arrival.headsign if arrival else ""),
            )
        )
    return sorted(rows, key=lambda row: (row.effective_time, row.scheduled_time, row.route_id))


def build_board(
    stop_id: str,
    stop_name: str,
    entries: Sequence[ScheduleEntry],
    live: Outcome | None,
    service_date: date | None = None,
    tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES,
    not_before: datetime | None = None,
    limit: int | None = None,
    carried_over: Sequence[ScheduleEntry] = (),
) -> DepartureBoard:
    """Build the board for a stop; a missing or degraded live outcome falls back to static rows."""
    if live is not None and live.is_ok:
        arrivals = live.value or []
        static_only = False
        banner = None
    else:
        arrivals = None
        static_only = True
        if live is None:
            banner = "Live data not requested; showing scheduled times only."
        else:
            banner = f"Live data unavailable ({live.reason}); showing scheduled times only."

    day = service_date or date.today()
    rows = render(entries, arrivals, day, tolerance_minutes, carried_over)
    if not_before is not None:
        rows = [row for row in rows if row.effective_time >= not_before]
    if limit is not None:
        rows = rows[:limit]
    return DepartureBoard(
        stop_id=stop_id,
        stop_name=stop_name,
        rows=rows,
        static_only=static_only,
        banner=banner,
        listing_date=not_before.date() if not_before is not None else day,
    )


__all__ = ["DEFAULT_TOLERANCE_MINUTES", "DepartureBoard", "DisplayRow", "build_board", "render"]
