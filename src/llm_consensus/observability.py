"""Structured event sinks for dispatch and consensus events.

Every sink receives ``(event_type, record)`` pairs produced by
:mod:`llm_consensus.dispatch_logging`. The dispatcher and the gateway hold
their sinks through :func:`combine_event_loggers`, so a sink that raises is
reported through :mod:`logging` and never interrupts a provider attempt or a
broadcast.
"""
from __future__ import annotations

from collections import Counter
from collections.abc import Collection, Iterable, Mapping
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sys
from threading import Lock
from typing import Any, Protocol, TextIO

PathLike = str | Path

_LOGGER = logging.getLogger(__name__)


class EventLogger(Protocol):
    """Protocol for structured event loggers."""

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        """Persist ``record`` for ``event_type``."""


def event_line(event_type: str, record: Mapping[str, Any]) -> str:
    """Serialize one event as a JSON line led by ``event`` and ``ts``."""
    payload: dict[str, Any] = {
        "event": event_type,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    for key, value in record.items():
        payload.setdefault(key, value)
    return json.dumps(payload, ensure_ascii=False, default=str)


class JsonlLogger:
    """Append dispatch events to a JSONL file, one line per event."""

    def __init__(self, path: PathLike) -> None:
        self._path = Path(path)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        line = event_line(event_type, record)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


class StdLogger:
    """Trace events to a text stream, optionally only some event types."""

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        event_types: Collection[str] | None = None,
    ) -> None:
        self._stream = stream or sys.stderr
        self._event_types = frozenset(event_types) if event_types is not None else None
        self._lock = Lock()

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        if self._event_types is not None and event_type not in self._event_types:
            return
        line = event_line(event_type, record)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


class CompositeLogger:
    """Fan events out to several sinks; a failing sink is logged and skipped.

    ``failures`` counts the swallowed errors per sink class so callers can
    notice a sink that has gone quiet.
    """

    def __init__(self, sinks: Iterable[EventLogger]) -> None:
        flattened: list[EventLogger] = []
        for sink in sinks:
            if isinstance(sink, CompositeLogger):
                flattened.extend(sink.sinks)
            else:
                flattened.append(sink)
        self._sinks = tuple(flattened)
        self._failures: Counter[str] = Counter()
        self._lock = Lock()

    @property
    def sinks(self) -> tuple[EventLogger, ...]:
        return self._sinks

    @property
    def failures(self) -> dict[str, int]:
        with self._lock:
            return dict(self._failures)

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        for sink in self._sinks:
            try:
                sink.emit(event_type, record)
            except Exception:  # noqa: BLE001
                name = type(sink).__name__
                with self._lock:
                    self._failures[name] += 1
                _LOGGER.warning(
                    "event sink %s failed for %s (session %s)",
                    name,
                    event_type,
                    record.get("session_key"),
                    exc_info=True,
                )


def combine_event_loggers(*loggers: EventLogger | None) -> CompositeLogger | None:
    """Wrap the given sinks in one isolating logger, ``None`` when there are none."""
    sinks = [logger for logger in loggers if logger is not None]
    if not sinks:
        return None
    if len(sinks) == 1 and isinstance(sinks[0], CompositeLogger):
        return sinks[0]
    return CompositeLogger(sinks)


__all__ = [
    "CompositeLogger",
    "EventLogger",
    "JsonlLogger",
    "PathLike",
    "StdLogger",
    "combine_event_loggers",
    "event_line",
]
