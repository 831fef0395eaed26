"""Madison Metro BusTime real-time predictions client."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any

import requests

from madbus.data.outcome import Outcome, degraded, ok

logger = logging.getLogger(__name__)

BUSTIME_API_BASE = "https://metromap.cityofmadison.com/bustime/api/v3"
BUSTIME_TIME_FORMATS = ("%Y%m%d %H:%M", "%Y%m%d %H:%M:%S")

# BusTime reports "nothing coming" as an error entry; these are valid empty answers.
EMPTY_ANSWER_MESSAGES = ("no service scheduled", "no arrival times")


class LiveDataUnavailable(Exception):
    """Raised when the BusTime feed is unreachable or returns an unusable payload."""


@dataclass(frozen=True)
class LiveArrival:
    """Real-time arrival estimate for a route at a stop."""

    stop_id: str
    route_id: str
    estimated_time: datetime
    source_freshness: datetime
    trip_id: str = ""
    headsign: str = ""


def parse_bustime_time(value: str) -> datetime:
    for fmt in BUSTIME_TIME_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised BusTime timestamp: {value!r}")


def parse_predictions(payload: Any) -> list[LiveArrival]:
    """Convert a ``getpredictions`` JSON payload into LiveArrival records."""
    if not isinstance(payload, dict):
        raise LiveDataUnavailable("BusTime response was not a JSON object")
    body = payload.get("bustime-response")
    if not isinstance(body, dict):
        raise LiveDataUnavailable("BusTime response is missing 'bustime-response'")

    predictions = body.get("prd") or []
    errors = body.get("error") or []
    if errors and not predictions:
        messages = [str(err.get("msg", "")) for err in errors if isinstance(err, dict)]
        if messages and all(msg.lower() in EMPTY_ANSWER_MESSAGES for msg in messages):
            return []
        detail = "; ".join(messages) or repr(errors)
        raise LiveDataUnavailable(f"BusTime error: {detail}")
    if not isinstance(predictions, list):
        raise LiveDataUnavailable("BusTime 'prd' field is not a list")

    arrivals: list[LiveArrival] = []
    for prd in predictions:
        if not isinstance(prd, dict):
            raise LiveDataUnavailable("BusTime prediction is not an object")
        try:
            arrivals.append(
                LiveArrival(
                    stop_id=str(prd["stpid"]),
                    route_id=str(prd["rt"]),
                    estimated_time=parse_bustime_time(prd["prdtm"]),
                    source_freshness=parse_bustime_time(prd["tmstmp"]),
                    trip_id=str(prd.get("tatripid", "")),
                    headsign=str(prd.get("des", "")),
                )
            )
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise LiveDataUnavailable(f"Malformed BusTime prediction: {exc}") from exc
    return arrivals


class BusTimeClient:
    """Thin wrapper around the BusTime API using requests. One attempt, no retries."""

    def __init__(
        self,
        api_key: str,
        api_base: str = BUSTIME_API_BASE,
        timeout_seconds: float = 10,
    ) -> None:
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._timeout_seconds = timeout_seconds

    @property
    def has_key(self) -> bool:
        return bool(self._api_key)

    def fetch(self, stop_id: str) -> list[LiveArrival]:
        """Fetch live arrival estimates for a stop."""
        params = {"stpid": stop_id, "format": "json"}
        return parse_predictions(self._get("/getpredictions", params=params))

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        url = f"{self._api_base}{path}"
        query = {"key": self._api_key, **params}
        try:
            response = requests.get(url, params=query, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise LiveDataUnavailable(f"BusTime request failed: {exc}") from exc

        if response.status_code != 200:
            body_text = response.text.strip()
            detail = f"Status {response.status_code}"
            if body_text:
                detail = f"{detail}, Body: {body_text[:200]}"
            raise LiveDataUnavailable(f"BusTime request failed: {detail}")

        try:
            return response.json()
        except ValueError as exc:
            raise LiveDataUnavailable("BusTime response was not valid JSON") from exc


def fetch_live(client: BusTimeClient, stop_id: str) -> Outcome:
    """Best-effort fetch: unavailability becomes a degraded outcome, never an exception."""
    if not client.has_key:
        return degraded("no BusTime API key configured (set MADBUS_API_KEY)")
    try:
        arrivals = client.fetch(stop_id)
    except LiveDataUnavailable as exc:
        logger.warning("Live data unavailable for stop %s: %s", stop_id, exc)
        return degraded(str(exc))
    logger.debug("Fetched %d live arrivals for stop %s", len(arrivals), stop_id)
    return ok(arrivals)


__all__ = [
    "BUSTIME_API_BASE",
    "BusTimeClient",
    "LiveArrival",
    "LiveDataUnavailable",
    "fetch_live",
    "parse_bustime_time",
    "parse_predictions",
]
