from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class _Candidate:
    key: str
    entries: list[tuple[int, Mapping[str, Any]]] = field(default_factory=list)
    votes: int = 0
    stable_index: int = 0

    def record(self, index: int, payload: Mapping[str, Any]) -> None:
        self.entries.append((index, payload))
        self.votes += 1
        self.stable_index = index if self.votes == 1 else min(self.stable_index, index)

    @property
    def primary(self) -> Mapping[str, Any]:
        return min(self.entries, key=lambda item: item[0])[1]


def candidate_key(payload: Any, field_name: str, prefix: int) -> str:
    if not isinstance(payload, Mapping):
        return ""
    value = payload.get(field_name)
    if isinstance(value, str):
        return value[:prefix]
    return ""


def is_candidate_shape(payloads: Sequence[Any], field_name: str) -> bool:
    """Candidate payloads are recognized by a non-empty field on the first one."""
    if not payloads:
        return False
    first = payloads[0]
    return isinstance(first, Mapping) and bool(first.get(field_name))


class CandidateSet:
    """Groups candidate payloads by the leading characters of one field."""

    def __init__(self, candidates: dict[str, _Candidate]) -> None:
        self._candidates = candidates

    @classmethod
    def from_payloads(
        cls,
        payloads: Iterable[Any],
        *,
        field_name: str = "patch",
        prefix: int = 100,
    ) -> CandidateSet:
        candidates: dict[str, _Candidate] = {}
        for index, payload in enumerate(payloads):
            if not isinstance(payload, Mapping):
                continue
            key = candidate_key(payload, field_name, prefix)
            candidate = candidates.get(key)
            if candidate is None:
                candidate = _Candidate(key=key)
                candidates[key] = candidate
            candidate.record(index, payload)
        return cls(candidates)

    def tally(self) -> dict[str, int]:
        return {candidate.key: candidate.votes for candidate in self._candidates.values()}

    def select(self) -> _Candidate:
        """Most votes wins; ties go to the group seen first."""
        if not self._candidates:
            raise ValueError("no candidates to select from")
        return min(
            self._candidates.values(),
            key=lambda candidate: (-candidate.votes, candidate.stable_index),
        )


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


def merge_insights(payloads: Sequence[Any]) -> dict[str, Any]:
    """Merge analysis-style payloads into a single insight record.

    ``hypothesis`` values and ``recommendations`` lists are concatenated in
    order. ``confidence`` is averaged over every payload; payloads without a
    numeric confidence add nothing but still count toward the divisor.
    """
    merged: dict[str, Any] = {"hypothesis": [], "recommendations": [], "confidence": 0.0}
    total = 0.0
    for payload in payloads:
        if not isinstance(payload, Mapping):
            continue
        hypothesis = payload.get("hypothesis")
        if hypothesis:
            merged["hypothesis"].append(hypothesis)
        recommendations = payload.get("recommendations")
        if isinstance(recommendations, list | tuple):
            merged["recommendations"].extend(recommendations)
        elif recommendations:
            merged["recommendations"].append(recommendations)
        confidence = _numeric(payload.get("confidence"))
        if confidence is not None:
            total += confidence
    merged["confidence"] = total / len(payloads) if payloads else 0.0
    return merged


__all__ = [
    "CandidateSet",
    "candidate_key",
    "is_candidate_shape",
    "merge_insights",
]
