"""Bounded per-session conversation history."""
from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock

from .config import DEFAULT_HISTORY_LIMIT

_ROLES = frozenset({"user", "assistant", "system"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"unsupported role: {self.role!r}")

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ConversationHistory:
    """Keeps the most recent ``limit`` turns, dropping the oldest first."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self._turns: deque[ConversationTurn] = deque(maxlen=limit)

    @property
    def limit(self) -> int:
        return self._turns.maxlen or 0

    def append(self, role: str, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content)
        self._turns.append(turn)
        return turn

    def turns(self) -> list[ConversationTurn]:
        return list(self._turns)

    def as_messages(self) -> list[dict[str, str]]:
        return [turn.as_message() for turn in self._turns]

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(tuple(self._turns))


class ConversationStore:
    """Owns one history per session key.

    Histories are created on first access. Callers mutate a history only from
    inside that session's serialized work.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._limit = limit
        self._histories: dict[str, ConversationHistory] = {}
        self._lock = Lock()

    def get(self, session_key: str) -> ConversationHistory:
        with self._lock:
            history = self._histories.get(session_key)
            if history is None:
                history = ConversationHistory(self._limit)
                self._histories[session_key] = history
            return history

    def drop(self, session_key: str) -> bool:
        with self._lock:
            return self._histories.pop(session_key, None) is not None

    def __contains__(self, session_key: object) -> bool:
        with self._lock:
            return session_key in self._histories

    def __len__(self) -> int:
        with self._lock:
            return len(self._histories)


__all__ = ["ConversationHistory", "ConversationStore", "ConversationTurn"]
