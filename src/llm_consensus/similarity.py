"""Textual similarity between decoded provider payloads."""
from __future__ import annotations

from collections.abc import Sequence
import json
from typing import Any

DEFAULT_SIMILARITY_THRESHOLD = 0.6


def compact_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def longest_common_substring(left: str, right: str) -> str:
    """Return the longest contiguous run shared by ``left`` and ``right``.

    Dynamic programming in O(len(left) * len(right)) time with two rolling
    rows. When several runs share the maximum length the one ending first in
    ``left`` wins.
    """
    if not left or not right:
        return ""
    best_len = 0
    best_end = 0
    previous = [0] * (len(right) + 1)
    for i, left_char in enumerate(left, start=1):
        current = [0] * (len(right) + 1)
        for j, right_char in enumerate(right, start=1):
            if left_char == right_char:
                run = previous[j - 1] + 1
                current[j] = run
                if run > best_len:
                    best_len = run
                    best_end = i
        previous = current
    return left[best_end - best_len : best_end]


def similarity_ratio(left: str, right: str) -> float:
    longest = max(len(left), len(right))
    if longest == 0:
        return 0.0
    return len(longest_common_substring(left, right)) / longest


def is_similar(
    left: Any,
    right: Any,
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> bool:
    """Compare two payloads by their compact JSON text."""
    return similarity_ratio(compact_json(left), compact_json(right)) > threshold


def agreement_score(
    payloads: Sequence[Any],
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> float:
    """Fraction of payload pairs that are similar.

    ``1.0`` for fewer than two payloads.
    """
    if len(payloads) < 2:
        return 1.0
    serialized = [compact_json(payload) for payload in payloads]
    agreements = 0
    comparisons = 0
    for i in range(len(serialized)):
        for j in range(i + 1, len(serialized)):
            comparisons += 1
            if similarity_ratio(serialized[i], serialized[j]) > threshold:
                agreements += 1
    if comparisons == 0:
        return 0.5
    return agreements / comparisons


__all__ = [
    "DEFAULT_SIMILARITY_THRESHOLD",
    "agreement_score",
    "compact_json",
    "is_similar",
    "longest_common_substring",
    "similarity_ratio",
]
