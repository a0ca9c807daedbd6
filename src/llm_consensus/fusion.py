"""Fuse the results of one broadcast dispatch into a consensus answer."""
from __future__ import annotations

from collections.abc import Mapping, Sequence
import math
from typing import Any

from .config import FusionConfig
from .consensus_candidates import CandidateSet, is_candidate_shape, merge_insights
from .results import ConsensusResult, JsonPayload, ProviderResult
from .similarity import agreement_score


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _unique_in_order(values: Sequence[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def count_changed_lines(payload: Any, field_name: str = "patch") -> int:
    """Number of ``+``/``-`` lines in the payload's patch text."""
    if not isinstance(payload, Mapping):
        return 0
    patch = payload.get(field_name)
    if not isinstance(patch, str):
        return 0
    return sum(1 for line in patch.split("\n") if line.startswith(("+", "-")))


class ConsensusFuser:
    """Combines provider answers into one result with confidence and risk.

    The output depends only on the ordered list of results, so identical input
    always fuses to an identical :class:`ConsensusResult`.
    """

    def __init__(self, config: FusionConfig | None = None) -> None:
        self._config = config or FusionConfig()

    @property
    def config(self) -> FusionConfig:
        return self._config

    def fuse(self, results: Sequence[ProviderResult]) -> ConsensusResult:
        task_ids = {result.task_id for result in results}
        if len(task_ids) > 1:
            raise ValueError(
                f"cannot fuse results from multiple tasks: {sorted(task_ids)}"
            )

        successes = [result for result in results if result.succeeded]
        if not successes:
            return ConsensusResult(
                response_text=self._config.no_success_text,
                confidence=0.0,
                risk_score=1.0,
                contributing_provider_ids=(),
                metadata={
                    "total_responses": len(results),
                    "successful_responses": 0,
                    "shape": "none",
                },
            )

        parsed: list[JsonPayload] = [
            result.parsed_payload for result in successes if result.parsed_payload is not None
        ]
        consensus, shape, tally = self._consensus_payload(parsed)
        agreement = agreement_score(parsed, threshold=self._config.similarity_threshold)
        success_rate = len(successes) / len(results)
        mean_self = self._mean_self_confidence(parsed)
        confidence = _clamp(
            self._config.success_weight * success_rate
            + self._config.agreement_weight * agreement
            + self._config.self_confidence_weight * mean_self
        )
        avg_changes = sum(
            count_changed_lines(payload, self._config.candidate_field) for payload in parsed
        ) / (len(parsed) or 1)
        risk = 1.0 - confidence
        for limit, bonus in self._config.change_bonuses:
            if avg_changes > limit:
                risk += bonus

        metadata: dict[str, Any] = {
            "total_responses": len(results),
            "successful_responses": len(successes),
            "avg_latency_ms": sum(result.latency_ms for result in successes) / len(successes),
            "success_rate": success_rate,
            "agreement": agreement,
            "mean_self_confidence": mean_self,
            "avg_changes": avg_changes,
            "shape": shape,
            "consensus": consensus,
        }
        if tally is not None:
            metadata["candidate_votes"] = tally

        return ConsensusResult(
            response_text=self._response_text(consensus, successes),
            confidence=confidence,
            risk_score=_clamp(risk),
            contributing_provider_ids=_unique_in_order(
                [result.provider_id for result in successes]
            ),
            metadata=metadata,
        )

    def _consensus_payload(
        self, parsed: Sequence[JsonPayload]
    ) -> tuple[Any, str, dict[str, int] | None]:
        if not parsed:
            return {}, "raw", None
        config = self._config
        if is_candidate_shape(parsed, config.candidate_field):
            candidates = CandidateSet.from_payloads(
                parsed, field_name=config.candidate_field, prefix=config.candidate_prefix
            )
            return dict(candidates.select().primary), "candidate", candidates.tally()
        return merge_insights(parsed), "insights", None

    def _mean_self_confidence(self, parsed: Sequence[JsonPayload]) -> float:
        # 0 や NaN も未申告と同じ扱い。範囲外の値はそのまま平均し、最終スコアでのみ丸める
        total = 0.0
        for payload in parsed:
            value = payload.get("confidence") if isinstance(payload, Mapping) else None
            declared = isinstance(value, int | float) and not isinstance(value, bool)
            if declared and value and not math.isnan(value):
                total += float(value)
            else:
                total += self._config.default_self_confidence
        return total / (len(parsed) or 1)

    @staticmethod
    def _response_text(consensus: Any, successes: Sequence[ProviderResult]) -> str:
        if isinstance(consensus, Mapping):
            for key in ("response", "text"):
                value = consensus.get(key)
                if isinstance(value, str) and value:
                    return value
        return successes[0].raw or ""


__all__ = ["ConsensusFuser", "count_changed_lines"]
