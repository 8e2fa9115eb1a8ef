"""Structured step events emitted while talking to the key.

Components take an ``observer`` callable and hand it a :class:`StepEvent`
for every protocol step. Nothing is printed unless the caller wires in a
sink such as :class:`LoggingObserver`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass(frozen=True)
class StepEvent:
    """One protocol step, e.g. ``chunk_sent`` with offset and length."""

    step: str
    detail: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.detail:
            return self.step
        parts = " ".join(f"{k}={v}" for k, v in self.detail.items())
        return f"{self.step} {parts}"


Observer = Callable[[StepEvent], None]


def null_observer(event: StepEvent) -> None:
    """Discard the event."""


class LoggingObserver:
    """Forward step events to a standard library logger."""

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._logger = logger or logging.getLogger("tkey_mcp.steps")
        self._level = level

    def __call__(self, event: StepEvent) -> None:
        self._logger.log(self._level, "%s", event)


class RecordingObserver:
    """Keep every event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[StepEvent] = []

    def __call__(self, event: StepEvent) -> None:
        self.events.append(event)

    def steps(self) -> list[str]:
        return [e.step for e in self.events]
