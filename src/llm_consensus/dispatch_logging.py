"""Event emission helpers for provider attempts, dispatches and fusion."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import (
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
)
from .observability import combine_event_loggers, CompositeLogger, EventLogger, JsonlLogger
from .results import ProviderFailure, ProviderResult
from .utils import content_hash

if TYPE_CHECKING:
    from .provider_spi import Task
    from .results import ConsensusResult

MetricsPath = str | Path | None


def resolve_event_logger(
    logger: EventLogger | None,
    metrics_path: MetricsPath,
) -> CompositeLogger | None:
    """Combine an explicit logger with a JSONL sink at ``metrics_path``.

    Both sinks receive every event when both are given. The result isolates
    sink failures from the dispatch path.
    """
    jsonl = JsonlLogger(metrics_path) if metrics_path is not None else None
    return combine_event_loggers(logger, jsonl)


def request_fingerprint(task: Task) -> str:
    return content_hash(
        task.session_key,
        task.prompt,
        asdict(task.options),
        tuple(tuple(sorted(message.items())) for message in task.messages),
    )


def failure_family(error: BaseException | None) -> str | None:
    if error is None:
        return None
    if isinstance(error, ProviderUnavailable):
        return "unavailable"
    if isinstance(error, ProviderTimeout | TimeoutError):
        return "timeout"
    if isinstance(error, ProviderError):
        return "provider_error"
    return "unknown"


def log_provider_call(
    event_logger: EventLogger | None,
    *,
    task: Task,
    result: ProviderResult,
    attempt: int,
    total_providers: int,
    policy: str,
) -> None:
    if event_logger is None:
        return
    outcome = result.outcome
    failed = isinstance(outcome, ProviderFailure)
    event_logger.emit(
        "provider_call",
        {
            "request_fingerprint": request_fingerprint(task),
            "task_id": task.task_id,
            "session_key": task.session_key,
            "provider": result.provider_id,
            "policy": policy,
            "attempt": attempt,
            "total_providers": total_providers,
            "status": "error" if failed else "ok",
            "outcome": "failure" if failed else "success",
            "reason": outcome.reason.value if failed else None,
            "latency_ms": outcome.latency_ms,
            "parsed": (not failed) and result.parsed_payload is not None,
            "error_type": outcome.error_type if failed else None,
            "error_message": outcome.message if failed else None,
        },
    )


def log_dispatch_metric(
    event_logger: EventLogger | None,
    *,
    task: Task,
    policy: str,
    results: Sequence[ProviderResult],
    latency_ms: int,
    winner: str | None = None,
) -> None:
    if event_logger is None:
        return
    successes = sum(1 for result in results if result.succeeded)
    event_logger.emit(
        "dispatch_metric",
        {
            "request_fingerprint": request_fingerprint(task),
            "task_id": task.task_id,
            "session_key": task.session_key,
            "policy": policy,
            "providers": [result.provider_id for result in results],
            "attempts": len(results),
            "successes": successes,
            "failures": len(results) - successes,
            "status": "ok" if successes else "error",
            "winner": winner,
            "latency_ms": latency_ms,
        },
    )


def log_chain_failed(
    event_logger: EventLogger | None,
    *,
    task: Task,
    results: Sequence[ProviderResult],
) -> None:
    if event_logger is None:
        return
    event_logger.emit(
        "provider_chain_failed",
        {
            "request_fingerprint": request_fingerprint(task),
            "task_id": task.task_id,
            "session_key": task.session_key,
            "provider_attempts": len(results),
            "providers": [result.provider_id for result in results],
            "reasons": [
                result.failure_reason.value if result.failure_reason is not None else None
                for result in results
            ],
        },
    )


def log_consensus_result(
    event_logger: EventLogger | None,
    *,
    task: Task,
    consensus: ConsensusResult,
) -> None:
    if event_logger is None:
        return
    metadata = consensus.metadata
    event_logger.emit(
        "consensus_result",
        {
            "request_fingerprint": request_fingerprint(task),
            "task_id": task.task_id,
            "session_key": task.session_key,
            "confidence": consensus.confidence,
            "risk_score": consensus.risk_score,
            "agreement": metadata.get("agreement"),
            "shape": metadata.get("shape"),
            "total_responses": metadata.get("total_responses"),
            "successful_responses": metadata.get("successful_responses"),
            "contributors": list(consensus.contributing_provider_ids),
        },
    )


__all__ = [
    "MetricsPath",
    "failure_family",
    "log_chain_failed",
    "log_consensus_result",
    "log_dispatch_metric",
    "log_provider_call",
    "request_fingerprint",
    "resolve_event_logger",
]
