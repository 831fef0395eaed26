"""Explicit success/degraded/fatal results for the fetch-or-degrade pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

OK = "OK"
DEGRADED = "DEGRADED"
FATAL = "FATAL"


@dataclass(frozen=True)
class Outcome:
    """Result of a pipeline step: a value, or the reason there is none."""

    status: str
    value: Any = None
    reason: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.status == OK

    @property
    def is_fatal(self) -> bool:
        return self.status == FATAL


def ok(value: Any) -> Outcome:
    return Outcome(OK, value=value)


def degraded(reason: str) -> Outcome:
    return Outcome(DEGRADED, reason=reason)


def fatal(reason: str) -> Outcome:
    return Outcome(FATAL, reason=reason)


__all__ = ["OK", "DEGRADED", "FATAL", "Outcome", "ok", "degraded", "fatal"]
