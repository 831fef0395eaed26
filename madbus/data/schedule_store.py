"""Static GTFS schedule store for Madison Metro stops."""

from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
import csv
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
import logging
from pathlib import Path
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

WEEKDAY = "weekday"
SATURDAY = "saturday"
SUNDAY = "sunday"

STOPS_FILE = "stops.txt"
TRIPS_FILE = "trips.txt"
ROUTES_FILE = "routes.txt"
STOP_TIMES_FILE = "stop_times.txt"
CALENDAR_FILE = "calendar.txt"
CALENDAR_DATES_FILE = "calendar_dates.txt"

_DAY_COLUMNS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_EXCEPTION_ADDED = "1"
_EXCEPTION_REMOVED = "2"


class DataLoadError(Exception):
    """Raised when the schedule directory is missing or unreadable."""


@dataclass(frozen=True)
class Stop:
    """A physical bus stop."""

    stop_id: str
    stop_name: str


@dataclass(frozen=True)
class ServiceCalendar:
    """Days on which a GTFS service pattern runs."""

    service_id: str
    days: frozenset[int]
    start_date: date
    end_date: date
    added: frozenset[date] = frozenset()
    removed: frozenset[date] = frozenset()

    def runs_on(self, day: date) -> bool:
        if day in self.removed:
            return False
        if day in self.added:
            return True
        return self.start_date <= day <= self.end_date and day.weekday() in self.days


@dataclass(frozen=True)
class ScheduleEntry:
    """One scheduled departure of a trip from a stop."""

    stop_id: str
    route_id: str
    scheduled_time: time
    service_day: str
    trip_id: str = ""
    headsign: str = ""
    service_id: str = ""
    overnight: bool = False

    @property
    def sort_key(self) -> tuple[bool, time, str, str]:
        return (self.overnight, self.scheduled_time, self.route_id, self.trip_id)

    def at(self, service_date: date) -> datetime:
        """Wall-clock departure for a trip running on ``service_date``."""
        moment = datetime.combine(service_date, self.scheduled_time)
        if self.overnight:
            moment += timedelta(days=1)
        return moment


def service_day_for(calendar: ServiceCalendar) -> str:
    """Classify a service pattern as weekday, saturday or sunday/holiday."""
    if calendar.days & {0, 1, 2, 3, 4}:
        return WEEKDAY
    if 5 in calendar.days:
        return SATURDAY
    return SUNDAY


def parse_gtfs_time(raw: str) -> tuple[time, bool]:
    """Parse ``H:MM:SS``; hours past 23 wrap into the next day."""
    parts = raw.strip().split(":")
    if len(parts) != 3:
        raise ValueError(f"Invalid GTFS time: {raw!r}")
    hours, minutes, seconds = (int(part) for part in parts)
    if hours < 0 or not 0 <= minutes < 60 or not 0 <= seconds < 60:
        raise ValueError(f"Invalid GTFS time: {raw!r}")
    return time(hours % 24, minutes, seconds), hours >= 24


def parse_gtfs_date(raw: str) -> date:
    return datetime.strptime(raw.strip(), "%Y%m%d").date()


@dataclass
class ScheduleTable:
    """In-memory timetable keyed by stop id. Not mutated after ``load``."""

    stops: dict[str, Stop]
    calendars: dict[str, ServiceCalendar]
    _entries_by_stop: dict[str, tuple[ScheduleEntry, ...]] = field(default_factory=dict)

    def stop(self, stop_id: str) -> Stop | None:
        return self.stops.get(stop_id)

    def lookup(self, stop_id: str, route_filter: str | None = None) -> list[ScheduleEntry]:
        """All entries at a stop ordered by scheduled time. Unknown stops yield []."""
        entries = self._entries_by_stop.get(stop_id, ())
        if route_filter:
            wanted = route_filter.strip().lower()
            entries = tuple(e for e in entries if e.route_id.lower() == wanted)
        return list(entries)

    def departures(
        self,
        stop_id: str,
        on: date,
        after: time | None = None,
        route_filter: str | None = None,
        limit: int | None = None,
    ) -> list[ScheduleEntry]:
        """Entries whose service runs on ``on``, at or after ``after``."""
        selected: list[ScheduleEntry] = []
        for entry in self.lookup(stop_id, route_filter):
            calendar = self.calendars.get(entry.service_id)
            if calendar is None or not calendar.runs_on(on):
                continue
            if after is not None and not entry.overnight and entry.scheduled_time < after:
                continue
            selected.append(entry)
        if limit is not None:
            selected = selected[:limit]
        return selected

    def search(self, text: str) -> list[Stop]:
        """Stops whose name contains ``text``, case-insensitively."""
        needle = text.lower()
        matches = [stop for stop in self.stops.values() if needle in stop.stop_name.lower()]
        return sorted(matches, key=lambda stop: (stop.stop_id, stop.stop_name))


@contextmanager
def _open_table(
    data_dir: Path, name: str, required: Iterable[str], optional: bool = False
) -> Iterator[Iterator[tuple[int, dict[str, str]]]]:
    path = data_dir / name
    if not path.is_file():
        if optional:
            yield iter(())
            return
        raise DataLoadError(f"Schedule file not found: {path}")
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.DictReader(handle)
            if reader.fieldnames is None:
                raise DataLoadError(f"Schedule file is empty: {path}")
            reader.fieldnames = [column.strip() for column in reader.fieldnames]
            missing = [column for column in required if column not in reader.fieldnames]
            if missing:
                raise DataLoadError(f"{path} is missing columns: {', '.join(missing)}")
            yield (
                (line_no, {k: (v or "").strip() for k, v in row.items() if k is not None})
                for line_no, row in enumerate(reader, start=2)
            )
    except csv.Error as exc:
        raise DataLoadError(f"Malformed CSV in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise DataLoadError(f"Unable to read {path}: {exc}") from exc


def _skip(name: str, line_no: int, reason: str) -> None:
    logger.warning("Skipping %s line %d: %s", name, line_no, reason)


def _load_stops(data_dir: Path) -> dict[str, Stop]:
    stops: dict[str, Stop] = {}
    with _open_table(data_dir, STOPS_FILE, ("stop_id", "stop_name")) as rows:
        for line_no, row in rows:
            stop_id = row.get("stop_id", "")
            if not stop_id:
                _skip(STOPS_FILE, line_no, "empty stop_id")
                continue
            stops[stop_id] = Stop(stop_id=stop_id, stop_name=row.get("stop_name", ""))
    return stops


def _load_calendars(data_dir: Path) -> dict[str, ServiceCalendar]:
    patterns: dict[str, tuple[frozenset[int], date, date]] = {}
    required = ("service_id", *_DAY_COLUMNS, "start_date", "end_date")
    with _open_table(data_dir, CALENDAR_FILE, required) as rows:
        for line_no, row in rows:
            service_id = row.get("service_id", "")
            if not service_id:
                _skip(CALENDAR_FILE, line_no, "empty service_id")
                continue
            try:
                start = parse_gtfs_date(row["start_date"])
                end = parse_gtfs_date(row["end_date"])
            except ValueError as exc:
                _skip(CALENDAR_FILE, line_no, str(exc))
                continue
            days = frozenset(i for i, column in enumerate(_DAY_COLUMNS) if row.get(column) == "1")
            patterns[service_id] = (days, start, end)

    added: dict[str, set[date]] = defaultdict(set)
    removed: dict[str, set[date]] = defaultdict(set)
    required_dates = ("service_id", "date", "exception_type")
    with _open_table(data_dir, CALENDAR_DATES_FILE, required_dates, optional=True) as rows:
        for line_no, row in rows:
            service_id = row.get("service_id", "")
            try:
                day = parse_gtfs_date(row.get("date", ""))
            except ValueError as exc:
                _skip(CALENDAR_DATES_FILE, line_no, str(exc))
                continue
            exception_type = row.get("exception_type")
            if not service_id or exception_type not in (_EXCEPTION_ADDED, _EXCEPTION_REMOVED):
                _skip(CALENDAR_DATES_FILE, line_no, "bad service_id or exception_type")
                continue
            target = added if exception_type == _EXCEPTION_ADDED else removed
            target[service_id].add(day)

    calendars: dict[str, ServiceCalendar] = {}
    for service_id in set(patterns) | set(added) | set(removed):
        if service_id in patterns:
            days, start, end = patterns[service_id]
        else:
            # Services defined only by calendar_dates run on their added dates.
            dates = added[service_id] | removed[service_id]
            days, start, end = frozenset(), min(dates), max(dates)
        calendars[service_id] = ServiceCalendar(
            service_id=service_id,
            days=days,
            start_date=start,
            end_date=end,
            added=frozenset(added.get(service_id, ())),
            removed=frozenset(removed.get(service_id, ())),
        )
    return calendars


def _load_route_names(data_dir: Path) -> dict[str, str]:
    names: dict[str, str] = {}
    with _open_table(data_dir, ROUTES_FILE, ("route_id",), optional=True) as rows:
        for _, row in rows:
            route_id = row.get("route_id", "")
            if route_id:
                names[route_id] = row.get("route_short_name") or route_id
    return names


def _load_trips(data_dir: Path, route_names: dict[str, str]) -> dict[str, tuple[str, str, str]]:
    """Map trip_id to (route display id, service_id, headsign)."""
    trips: dict[str, tuple[str, str, str]] = {}
    with _open_table(data_dir, TRIPS_FILE, ("route_id", "service_id", "trip_id")) as rows:
        for line_no, row in rows:
            trip_id = row.get("trip_id", "")
            route_id = row.get("route_id", "")
            service_id = row.get("service_id", "")
            if not trip_id or not route_id or not service_id:
                _skip(TRIPS_FILE, line_no, "empty trip_id, route_id or service_id")
                continue
            route = row.get("route_short_name") or route_names.get(route_id, route_id)
            trips[trip_id] = (route, service_id, row.get("trip_headsign", ""))
    return trips


def load(data_path: str | Path) -> ScheduleTable:
    """Load a GTFS directory into a ScheduleTable.

    Raises DataLoadError when the directory or a required file is missing.
    Individual malformed rows are skipped with a warning.
    """
    data_dir = Path(data_path)
    if not data_dir.is_dir():
        raise DataLoadError(f"Schedule data directory not found: {data_dir}")

    stops = _load_stops(data_dir)
    calendars = _load_calendars(data_dir)
    trips = _load_trips(data_dir, _load_route_names(data_dir))

    by_stop: dict[str, list[ScheduleEntry]] = defaultdict(list)
    required = ("trip_id", "stop_id", "departure_time")
    with _open_table(data_dir, STOP_TIMES_FILE, required) as rows:
        for line_no, row in rows:
            stop_id = row.get("stop_id", "")
            trip = trips.get(row.get("trip_id", ""))
            if not stop_id or trip is None:
                _skip(STOP_TIMES_FILE, line_no, "empty stop_id or unknown trip_id")
                continue
            route_id, service_id, headsign = trip
            calendar = calendars.get(service_id)
            if calendar is None:
                _skip(STOP_TIMES_FILE, line_no, f"unknown service_id {service_id!r}")
                continue
            raw_time = row.get("departure_time") or row.get("arrival_time", "")
            try:
                scheduled, overnight = parse_gtfs_time(raw_time)
            except ValueError as exc:
                _skip(STOP_TIMES_FILE, line_no, str(exc))
                continue
            by_stop[stop_id].append(
                ScheduleEntry(
                    stop_id=stop_id,
                    route_id=route_id,
                    scheduled_time=scheduled,
                    service_day=service_day_for(calendar),
                    trip_id=row.get("trip_id", ""),
                    headsign=row.get("stop_headsign") or headsign,
                    service_id=service_id,
                    overnight=overnight,
                )
            )

    entries = {
        stop_id: tuple(sorted(items, key=lambda entry: entry.sort_key))
        for stop_id, items in by_stop.items()
    }
    logger.info(
        "Loaded %d stops, %d services, %d scheduled stop times from %s",
        len(stops),
        len(calendars),
        sum(len(items) for items in entries.values()),
        data_dir,
    )
    return ScheduleTable(stops=stops, calendars=calendars, _entries_by_stop=entries)


__all__ = [
    "DataLoadError",
    "SATURDAY",
    "SUNDAY",
    "ScheduleEntry",
    "ScheduleTable",
    "ServiceCalendar",
    "Stop",
    "WEEKDAY",
    "load",
    "parse_gtfs_date",
    "parse_gtfs_time",
    "service_day_for",
]
