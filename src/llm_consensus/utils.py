"""Utility helpers shared across the consensus core."""

import hashlib
import time
from collections.abc import Mapping, Sequence
from typing import Any


def normalize_message(entry: Mapping[str, Any]) -> Mapping[str, Any] | None:
    """Normalize a chat message mapping into a canonical structure."""

    role = str(entry.get("role", "user") or "user").strip() or "user"
    content = entry.get("content")
    if isinstance(content, str):
        text = content.strip()
        if not text:
            return None
        return {"role": role, "content": text}
    if isinstance(content, Sequence) and not isinstance(content, bytes | bytearray):
        parts = [part.strip() for part in content if isinstance(part, str) and part.strip()]
        if not parts:
            return None
        return {"role": role, "content": "\n".join(parts)}
    return None


def extract_prompt_from_messages(messages: Sequence[Mapping[str, Any]]) -> str:
    """Find the most recent user-provided text snippet from ``messages``."""

    for message in reversed(messages):
        role = str(message.get("role", "")).lower()
        if role == "assistant":
            continue
        content = message.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
    return ""


def content_hash(*parts: Any) -> str:
    """Return a deterministic short hash for logging fingerprints."""

    h = hashlib.sha256()
    for part in parts:
        if isinstance(part, Mapping):
            h.update(repr(sorted(part.items())).encode())
        else:
            h.update(repr(part).encode())
    return h.hexdigest()[:16]


def elapsed_ms(start_ts: float, *, now: float | None = None) -> int:
    """Return elapsed time in milliseconds since the monotonic ``start_ts``."""

    current = time.monotonic() if now is None else now
    return max(0, int((current - start_ts) * 1000))


__all__ = [
    "content_hash",
    "elapsed_ms",
    "normalize_message",
    "extract_prompt_from_messages",
]
