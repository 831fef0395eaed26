from __future__ import annotations

import textwrap

import pytest

from madbus.config import AppConfig, load_config
from madbus.data.live_client import BUSTIME_API_BASE


VALID_YAML = """
schedule:
  data_dir: "gtfs/madison"

live:
  api_base: "https://bustime.example/api/v3/"
  timeout_seconds: 5
  match_tolerance_minutes: 20
  enabled: false

logging:
  level: "info"
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in ("BUS_DATA", "MADBUS_API_KEY", "MADBUS_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _write_yaml(tmp_path, contents: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(contents))
    return str(path)


def test_load_config_valid(tmp_path, monkeypatch) -> None:
    path = _write_yaml(tmp_path, VALID_YAML)

    monkeypatch.setenv("MADBUS_API_KEY", "testkey")
    config = load_config(path)

    assert isinstance(config, AppConfig)
    assert config.schedule.data_dir == "gtfs/madison"
    assert config.live.api_key == "testkey"
    assert config.live.api_base == "https://bustime.example/api/v3"
    assert config.live.timeout_seconds == 5
    assert config.live.match_tolerance_minutes == 20
    assert config.live.enabled is False
    assert config.log.level == "INFO"


def test_environment_overrides_file(tmp_path, monkeypatch) -> None:
    path = _write_yaml(tmp_path, VALID_YAML)

    monkeypatch.setenv("BUS_DATA", "/srv/gtfs")
    monkeypatch.setenv("MADBUS_LOG_LEVEL", "debug")
    config = load_config(path)

    assert config.schedule.data_dir == "/srv/gtfs"
    assert config.log.level == "DEBUG"


def test_defaults_without_config_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert config.schedule.data_dir == "data"
    assert config.live.api_base == BUSTIME_API_BASE
    assert config.live.api_key == ""
    assert config.live.timeout_seconds == 10
    assert config.live.match_tolerance_minutes == 30
    assert config.live.enabled is True
    assert config.log.level == "WARNING"


def test_load_config_missing_file(tmp_path) -> None:
    missing_path = tmp_path / "does_not_exist.yaml"

    with pytest.raises(ValueError):
        load_config(str(missing_path))


def test_load_config_top_level_not_mapping(tmp_path) -> None:
    path = _write_yaml(tmp_path, "- just\n- a list\n")

    with pytest.raises(ValueError):
        load_config(path)


def test_load_config_section_not_mapping(tmp_path) -> None:
    path = _write_yaml(tmp_path, "live: 5\n")

    with pytest.raises(ValueError):
        load_config(path)


@pytest.mark.parametrize("value", ['"ten"', "0", "-3", "true"])
def test_load_config_bad_timeout(tmp_path, value: str) -> None:
    path = _write_yaml(tmp_path, f"live:\n  timeout_seconds: {value}\n")

    with pytest.raises(ValueError):
        load_config(path)


@pytest.mark.parametrize("value", ['"false"', "0", "no_thanks"])
def test_load_config_enabled_must_be_boolean(tmp_path, value: str) -> None:
    path = _write_yaml(tmp_path, f"live:\n  enabled: {value}\n")

    with pytest.raises(ValueError, match="enabled"):
        load_config(path)


@pytest.mark.parametrize("value", ["10", "[debug]"])
def test_load_config_level_must_be_string(tmp_path, value: str) -> None:
    path = _write_yaml(tmp_path, f"logging:\n  level: {value}\n")

    with pytest.raises(ValueError, match="level"):
        load_config(path)
