from __future__ import annotations

from pathlib import Path
import textwrap

import pytest

STOPS = """\
stop_id,stop_name,stop_lat,stop_lon
100,Capitol Square,43.0747,-89.3841
200,East Towne Mall,43.1298,-89.3079
"""

ROUTES = """\
route_id,route_short_name,route_long_name
R1,A,East-West
R2,80,Campus Circulator
"""

CALENDAR = """\
service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,start_date,end_date
WK,1,1,1,1,1,0,0,20240101,20301231
SAT,0,0,0,0,0,1,0,20240101,20301231
"""

# 2024-07-04 (a Thursday) runs the Saturday schedule.
CALENDAR_DATES = """\
service_id,date,exception_type
WK,20240704,2
SAT,20240704,1
"""

TRIPS = """\
route_id,service_id,trip_id,trip_headsign
R1,WK,T1,East Towne
R1,WK,T2,East Towne
R2,WK,T3,Campus
R1,SAT,T4,East Towne
"""

STOP_TIMES = """\
trip_id,arrival_time,departure_time,stop_id,stop_sequence
T2,08:30:00,08:30:00,100,1
T1,08:00:00,08:00:00,100,1
T3,8:15:00,8:15:00,100,1
T4,09:00:00,09:00:00,100,1
T1,08:20:00,08:20:00,200,2
T3,24:10:00,24:10:00,200,2
"""

GTFS_FILES = {
    "stops.txt": STOPS,
    "routes.txt": ROUTES,
    "calendar.txt": CALENDAR,
    "calendar_dates.txt": CALENDAR_DATES,
    "trips.txt": TRIPS,
    "stop_times.txt": STOP_TIMES,
}


def write_gtfs(directory: Path, overrides: dict[str, str | None] | None = None) -> Path:
    """Write the sample feed; an override of None drops that file."""
    directory.mkdir(parents=True, exist_ok=True)
    files = dict(GTFS_FILES)
    files.update(overrides or {})
    for name, contents in files.items():
        if contents is None:
            continue
        (directory / name).write_text(textwrap.dedent(contents), encoding="utf-8")
    return directory


@pytest.fixture()
def gtfs_dir(tmp_path) -> Path:
    return write_gtfs(tmp_path / "gtfs")


@pytest.fixture()
def make_gtfs(tmp_path):
    def _make(overrides: dict[str, str | None] | None = None) -> Path:
        return write_gtfs(tmp_path / "custom_gtfs", overrides)

    return _make


@pytest.fixture()
def sample_stop_times() -> str:
    return STOP_TIMES
