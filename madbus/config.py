"""Configuration loader for the madbus schedule utility."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Any

from dotenv import load_dotenv
import yaml

from madbus.data.live_client import BUSTIME_API_BASE

DEFAULT_CONFIG_PATH = "config/config.yaml"
DEFAULT_DATA_DIR = "data"


@dataclass(frozen=True)
class ScheduleConfig:
    """Static GTFS schedule configuration."""

    data_dir: str


@dataclass(frozen=True)
class LiveConfig:
    """BusTime real-time feed configuration."""

    api_base: str
    api_key: str
    timeout_seconds: float
    match_tolerance_minutes: int
    enabled: bool


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    schedule: ScheduleConfig
    live: LiveConfig
    log: LoggingConfig


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"'{key}' config must be a mapping")
    return section


def _number(mapping: dict[str, Any], key: str, default: float, context: str) -> float:
    value = mapping.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {context} config must be a number")
    if value <= 0:
        raise ValueError(f"'{key}' in {context} config must be positive")
    return value


def _typed(mapping: dict[str, Any], key: str, default: Any, kind: type, context: str) -> Any:
    value = mapping.get(key, default)
    if not isinstance(value, kind):
        raise ValueError(f"'{key}' in {context} config must be a {kind.__name__}")
    return value


def _read_yaml(
path: str | None) -> dict[str, Any]:
    if path is None:
        if not os.path.exists(DEFAULT_CONFIG_PATH):
            return {}
        path = DEFAULT_CONFIG_PATH
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ValueError(f"Config file not found: {path}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping at the top level")
    return data


def load_config(path: str | None = None) -> AppConfig:
    """Load application configuration from a YAML file and the environment.

    ``path`` must exist when given. Without it, ``config/config.yaml`` is read
    if present and built-in defaults are used otherwise. ``BUS_DATA``,
    ``MADBUS_API_KEY`` and ``MADBUS_LOG_LEVEL`` override the file.
    """
    load_dotenv()
    data = _read_yaml(path)

    schedule_section = _section(data, "schedule")
    live_section = _section(data, "live")
    logging_section = _section(data, "logging")

    schedule = ScheduleConfig(
        data_dir=os.environ.get("BUS_DATA") or schedule_section.get("data_dir", DEFAULT_DATA_DIR),
    )

    live = LiveConfig(
        api_base=str(live_section.get("api_base", BUSTIME_API_BASE)).rstrip("/"),
        api_key=os.environ.get("MADBUS_API_KEY", "").strip(),
        timeout_seconds=_number(live_section, "timeout_seconds", 10, "live"),
        match_tolerance_minutes=int(_number(live_section, "match_tolerance_minutes", 30, "live")),
        enabled=_typed(live_section, "enabled", True, bool, "live"),
    )

    file_level = _typed(logging_section, "level", "WARNING", str, "logging")
    logging = LoggingConfig(
        level=(os.environ.get("MADBUS_LOG_LEVEL") or file_level).upper(),
    )

    return AppConfig(schedule=schedule, live=live, log=logging)


__all__ = [
    "AppConfig",
    "LiveConfig",
    "LoggingConfig",
    "ScheduleConfig",
    "load_config",
]
