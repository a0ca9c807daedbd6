"""Prometheus exporter consuming structured dispatch events."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def _non_negative(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if value < 0:
        return None
    return float(value)


def _normalize_status(value: Any) -> str:
    normalized = str(value or "unknown").lower()
    if normalized in {"ok", "success"}:
        return "ok"
    if normalized in {"error", "errored", "failure", "fail", "failed"}:
        return "error"
    return normalized


class PrometheusMetricsExporter:
    """Translate dispatch events into Prometheus counters and histograms.

    Usable directly as an event logger, alone or inside a ``CompositeLogger``.
    """

    def __init__(self, namespace: str = "llm_consensus", *, registry: Any | None = None) -> None:
        try:
            from prometheus_client import Counter, Histogram
        except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
            raise RuntimeError(
                "prometheus_client is required to use PrometheusMetricsExporter"
            ) from exc

        extra: dict[str, Any] = {} if registry is None else {"registry": registry}

        self._provider_call_total = Counter(
            f"{namespace}_provider_call_total",
            "Total provider call attempts.",
            ("provider", "status", "reason"),
            **extra,
        )
        self._provider_call_latency_ms = Histogram(
            f"{namespace}_provider_call_latency_ms",
            "Latency of provider calls (ms).",
            ("provider", "status"),
            **extra,
        )
        self._dispatch_total = Counter(
            f"{namespace}_dispatch_total",
            "Total dispatch outcomes.",
            ("policy", "status"),
            **extra,
        )
        self._dispatch_latency_ms = Histogram(
            f"{namespace}_dispatch_latency_ms",
            "End-to-end latency of dispatches (ms).",
            ("policy",),
            **extra,
        )
        self._consensus_confidence = Histogram(
            f"{namespace}_consensus_confidence",
            "Confidence of fused consensus results.",
            buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
            **extra,
        )
        self._consensus_risk = Histogram(
            f"{namespace}_consensus_risk_score",
            "Risk score of fused consensus results.",
            buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
            **extra,
        )

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        self.handle_event(event_type, record)

    def handle_event(self, event_type: str, record: Mapping[str, Any]) -> None:
        if event_type == "provider_call":
            provider = str(record.get("provider") or "unknown")
            status = _normalize_status(record.get("status"))
            reason = str(record.get("reason") or "none")
            self._provider_call_total.labels(
                provider=provider, status=status, reason=reason
            ).inc()
            latency_ms = _non_negative(record.get("latency_ms"))
            if latency_ms is not None:
                self._provider_call_latency_ms.labels(
                    provider=provider, status=status
                ).observe(latency_ms)

        elif event_type == "dispatch_metric":
            policy = str(record.get("policy") or "unknown")
            status = _normalize_status(record.get("status"))
            self._dispatch_total.labels(policy=policy, status=status).inc()
            latency_ms = _non_negative(record.get("latency_ms"))
            if latency_ms is not None:
                self._dispatch_latency_ms.labels(policy=policy).observe(latency_ms)

        elif event_type == "consensus_result":
            confidence = _non_negative(record.get("confidence"))
            if confidence is not None:
                self._consensus_confidence.observe(confidence)
            risk = _non_negative(record.get("risk_score"))
            if risk is not None:
                self._consensus_risk.observe(risk)


__all__ = ["PrometheusMetricsExporter"]
