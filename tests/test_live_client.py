from __future__ import annotations

from datetime import datetime
from typing import Any
from unittest.mock import Mock, patch

import pytest
import requests

from madbus.data.live_client import (
    BusTimeClient,
    LiveArrival,
    LiveDataUnavailable,
    fetch_live,
    parse_predictions,
)
from madbus.data.outcome import DEGRADED, OK


@pytest.fixture()
def bustime_client() -> BusTimeClient:
    return BusTimeClient("test-key", api_base="https://bustime.example/api/v3")


def _mock_response(status_code: int, json_data: Any = None, text: str = "") -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = text
    if json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.side_effect = ValueError("Invalid JSON")
    return response


def _prediction(**overrides: Any) -> dict[str, Any]:
    prd = {
        "tmstmp": "20240701 07:58",
        "typ": "D",
        "stpid": "100",
        "stpnm": "Capitol Square",
        "rt": "A",
        "des": "East Towne",
        "prdtm": "20240701 08:05",
        "tatripid": "T1",
        "prdctdn": "7",
    }
    prd.update(overrides)
    return prd


def _payload(*predictions: dict[str, Any]) -> dict[str, Any]:
    return {"bustime-response": {"prd": list(predictions)}}


def test_fetch_returns_live_arrivals(bustime_client: BusTimeClient) -> None:
    response = _mock_response(200, _payload(_prediction()))
    with patch("requests.get", return_value=response) as mock_get:
        arrivals = bustime_client.fetch("100")

    assert arrivals == [
        LiveArrival(
            stop_id="100",
            route_id="A",
            estimated_time=datetime(2024, 7, 1, 8, 5),
            source_freshness=datetime(2024, 7, 1, 7, 58),
            trip_id="T1",
            headsign="East Towne",
        )
    ]
    mock_get.assert_called_once()
    args, kwargs = mock_get.call_args
    assert args[0] == "https://bustime.example/api/v3/getpredictions"
    assert kwargs["params"] == {"key": "test-key", "stpid": "100", "format": "json"}
    assert kwargs["timeout"] == 10


def test_fetch_accepts_seconds_in_timestamps(bustime_client: BusTimeClient) -> None:
    response = _mock_response(200, _payload(_prediction(prdtm="20240701 08:05:30")))
    with patch("requests.get", return_value=response):
        arrivals = bustime_client.fetch("100")

    assert arrivals[0].estimated_time == datetime(2024, 7, 1, 8, 5, 30)


def test_no_service_error_is_empty_answer(bustime_client: BusTimeClient) -> None:
    payload = {"bustime-response": {"error": [{"stpid": "100", "msg": "No service scheduled"}]}}
    with patch("requests.get", return_value=_mock_response(200, payload)):
        assert bustime_client.fetch("100") == []


def test_api_error_raises_unavailable(bustime_client: BusTimeClient) -> None:
    payload = {"bustime-response": {"error": [{"msg": "Invalid API access key supplied"}]}}
    with patch("requests.get", return_value=_mock_response(200, payload)):
        with pytest.raises(LiveDataUnavailable) as exc_info:
            bustime_client.fetch("100")

    assert "Invalid API access key" in str(exc_info.value)


def test_non_200_raises_unavailable(bustime_client: BusTimeClient) -> None:
    response = _mock_response(503, {"error": "down"}, text="Service Unavailable")
    with patch("requests.get", return_value=response):
        with pytest.raises(LiveDataUnavailable) as exc_info:
            bustime_client.fetch("100")

    assert "503" in str(exc_info.value)


def test_network_error_raises_unavailable(bustime_client: BusTimeClient) -> None:
    with patch("requests.get", side_effect=requests.exceptions.ConnectionError("boom")):
        with pytest.raises(LiveDataUnavailable):
            bustime_client.fetch("100")


def test_invalid_json_raises_unavailable(bustime_client: BusTimeClient) -> None:
    with patch("requests.get", return_value=_mock_response(200, None)):
        with pytest.raises(LiveDataUnavailable):
            bustime_client.fetch("100")


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"unexpected": {}},
        _payload(_prediction(prdtm="soon")),
        _payload({"stpid": "100", "rt": "A"}),
        _payload("not-a-prediction"),
    ],
)
def test_malformed_payload_raises_unavailable(payload: Any) -> None:
    with pytest.raises(LiveDataUnavailable):
        parse_predictions(payload)


def test_fetch_live_ok(bustime_client: BusTimeClient) -> None:
    with patch("requests.get", return_value=_mock_response(200, _payload(_prediction()))):
        outcome = fetch_live(bustime_client, "100")

    assert outcome.status == OK
    assert [a.route_id for a in outcome.value] == ["A"]


def test_fetch_live_degrades_on_network_error(bustime_client: BusTimeClient) -> None:
    with patch("requests.get", side_effect=requests.exceptions.Timeout("slow")):
        outcome = fetch_live(bustime_client, "100")

    assert outcome.status == DEGRADED
    assert "slow" in outcome.reason


def test_fetch_live_without_key_skips_network() -> None:
    client = BusTimeClient("")
    with patch("requests.get") as mock_get:
        outcome = fetch_live(client, "100")

    assert outcome.status == DEGRADED
    assert "MADBUS_API_KEY" in outcome.reason
    mock_get.assert_not_called()
