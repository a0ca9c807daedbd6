"""Normalized per-provider outcomes and fused consensus results."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
import json
import re
from types import MappingProxyType
from typing import Any

JsonPayload = dict[str, Any] | list[Any]

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_BRACED_SPAN = re.compile(r"\{[\s\S]*\}")


class FailureReason(str, Enum):
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"


@dataclass(frozen=True)
class ProviderSuccess:
    raw: str
    latency_ms: int
    parsed_payload: JsonPayload | None = None


@dataclass(frozen=True)
class ProviderFailure:
    reason: FailureReason
    latency_ms: int
    message: str = ""
    error_type: str | None = None


ProviderOutcome = ProviderSuccess | ProviderFailure


@dataclass(frozen=True)
class ProviderResult:
    """Outcome of exactly one provider attempt for one task."""

    provider_id: str
    task_id: str
    outcome: ProviderOutcome

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, ProviderSuccess)

    @property
    def raw(self) -> str | None:
        if isinstance(self.outcome, ProviderSuccess):
            return self.outcome.raw
        return None

    @property
    def parsed_payload(self) -> JsonPayload | None:
        if isinstance(self.outcome, ProviderSuccess):
            return self.outcome.parsed_payload
        return None

    @property
    def failure_reason(self) -> FailureReason | None:
        if isinstance(self.outcome, ProviderFailure):
            return self.outcome.reason
        return None

    @property
    def latency_ms(self) -> int:
        return self.outcome.latency_ms


@dataclass(frozen=True)
class ConsensusResult:
    response_text: str
    confidence: float
    risk_score: float
    contributing_provider_ids: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be within [0, 1]")
        if not 0.0 <= self.risk_score <= 1.0:
            raise ValueError("risk_score must be within [0, 1]")
        object.__setattr__(
            self, "contributing_provider_ids", tuple(self.contributing_provider_ids)
        )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def has_contributors(self) -> bool:
        return bool(self.contributing_provider_ids)


def _loads_structured(text: str) -> JsonPayload | None:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    if isinstance(value, dict | list):
        return value
    return None


def decode_payload(raw: str) -> JsonPayload | None:
    """Best-effort structured decode of a provider answer.

    Strict JSON is tried first, then a fenced ``json`` block, then the outermost
    brace-delimited span. Returns ``None`` when nothing decodes to an object or
    array.
    """

    if not isinstance(raw, str) or not raw.strip():
        return None
    payload = _loads_structured(raw)
    if payload is not None:
        return payload
    fenced = _FENCED_JSON.search(raw)
    if fenced:
        payload = _loads_structured(fenced.group(1))
        if payload is not None:
            return payload
    braced = _BRACED_SPAN.search(raw)
    if braced:
        return _loads_structured(braced.group(0))
    return None


__all__ = [
    "ConsensusResult",
    "FailureReason",
    "JsonPayload",
    "ProviderFailure",
    "ProviderOutcome",
    "ProviderResult",
    "ProviderSuccess",
    "decode_payload",
]
