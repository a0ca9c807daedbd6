"""Append-only audit records for completed submissions."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
import json
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from .observability import PathLike
from .provider_spi import Task
from .results import ConsensusResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditRecord:
    session_key: str
    task: Task
    result: ConsensusResult | str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_key": self.session_key,
            "task": _jsonable(self.task),
            "result": _jsonable(self.result),
            "timestamp": self.timestamp.isoformat(),
        }


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: _jsonable(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class AuditSink(Protocol):
    """Storage collaborator accepting opaque records."""

    def append(self, record: AuditRecord) -> None:
        ...


class JsonlAuditSink:
    """Append audit records to a JSONL file."""

    def __init__(self, path: PathLike) -> None:
        self._path = Path(path)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, record: AuditRecord) -> None:
        parent = self._path.parent
        if parent != Path(""):
            parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record.to_dict(), ensure_ascii=False, default=str)
        with self._lock:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


__all__ = ["AuditRecord", "AuditSink", "JsonlAuditSink"]
