"""Provider dispatcher running one task under broadcast or fallback policy."""
from __future__ import annotations

import asyncio
from collections.abc import Sequence
import time

from .config import DispatchPolicy
from .dispatch_logging import (
    failure_family,
    log_chain_failed,
    log_dispatch_metric,
    log_provider_call,
)
from .dispatch_modes import (
    BroadcastStrategy,
    DispatchContext,
    DispatchStrategy,
    FallbackStrategy,
    StrategyResult,
)
from .errors import AllProvidersFailed
from .observability import combine_event_loggers, EventLogger
from .provider_spi import (
    AsyncProviderSPI,
    ensure_async_provider,
    provider_id,
    ProviderSPI,
    Task,
)
from .results import (
    decode_payload,
    FailureReason,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
)
from .utils import elapsed_ms

_REASONS = {
    "unavailable": FailureReason.UNAVAILABLE,
    "timeout": FailureReason.TIMEOUT,
    "provider_error": FailureReason.PROVIDER_ERROR,
}


def classify_failure(error: BaseException) -> FailureReason:
    return _REASONS.get(failure_family(error) or "", FailureReason.PROVIDER_ERROR)


class ProviderDispatcher:
    """Runs a task against providers and normalizes every attempt into data.

    Individual provider failures never escape as exceptions; they become
    :class:`ProviderFailure` outcomes. Only the fallback policy raises, with
    :class:`AllProvidersFailed`, once every provider has failed. Event sinks
    are held behind a :class:`CompositeLogger`, so a raising sink is logged
    and the attempt still returns its result.
    """

    def __init__(
        self,
        logger: EventLogger | None = None,
        *,
        max_concurrency: int | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self._logger = combine_event_loggers(logger)
        self._max_concurrency = max_concurrency
        self._strategies: dict[DispatchPolicy, DispatchStrategy] = {
            DispatchPolicy.BROADCAST: BroadcastStrategy(),
            DispatchPolicy.FALLBACK: FallbackStrategy(),
        }

    async def _attempt(
        self,
        task: Task,
        attempt: int,
        provider: ProviderSPI | AsyncProviderSPI,
        async_provider: AsyncProviderSPI,
        *,
        time_budget_s: float,
        total_providers: int,
        policy: DispatchPolicy,
    ) -> ProviderResult:
        name = provider_id(provider)
        started = time.monotonic()
        try:
            raw = await asyncio.wait_for(
                async_provider.invoke_async(task, time_budget_s), timeout=time_budget_s
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            outcome: ProviderSuccess | ProviderFailure = ProviderFailure(
                reason=classify_failure(exc),
                latency_ms=elapsed_ms(started),
                message=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )
        else:
            if isinstance(raw, str):
                outcome = ProviderSuccess(
                    raw=raw,
                    latency_ms=elapsed_ms(started),
                    parsed_payload=decode_payload(raw),
                )
            else:
                outcome = ProviderFailure(
                    reason=FailureReason.PROVIDER_ERROR,
                    latency_ms=elapsed_ms(started),
                    message=f"provider returned {type(raw).__name__}, expected str",
                    error_type="TypeError",
                )
        result = ProviderResult(provider_id=name, task_id=task.task_id, outcome=outcome)
        log_provider_call(
            self._logger,
            task=task,
            result=result,
            attempt=attempt,
            total_providers=total_providers,
            policy=policy.value,
        )
        return result

    async def _run(
        self,
        task: Task,
        providers: Sequence[ProviderSPI | AsyncProviderSPI],
        policy: DispatchPolicy,
        time_budget_s: float,
    ) -> StrategyResult:
        if not providers:
            raise ValueError("dispatch requires at least one provider")
        if time_budget_s <= 0:
            raise ValueError("time_budget_s must be positive")
        pairs = [(provider, ensure_async_provider(provider)) for provider in providers]
        total = len(pairs)

        async def _attempt(
            attempt: int,
            provider: ProviderSPI | AsyncProviderSPI,
            async_provider: AsyncProviderSPI,
        ) -> ProviderResult:
            return await self._attempt(
                task,
                attempt,
                provider,
                async_provider,
                time_budget_s=time_budget_s,
                total_providers=total,
                policy=policy,
            )

        context = DispatchContext(
            task=task,
            providers=pairs,
            time_budget_s=time_budget_s,
            attempt=_attempt,
            event_logger=self._logger,
            max_concurrency=self._max_concurrency,
        )
        started = time.monotonic()
        outcome = await self._strategies[policy].run(context)
        log_dispatch_metric(
            self._logger,
            task=task,
            policy=policy.value,
            results=outcome.results,
            latency_ms=elapsed_ms(started),
            winner=outcome.winner.provider_id if outcome.winner is not None else None,
        )
        return outcome

    async def broadcast(
        self,
        task: Task,
        providers: Sequence[ProviderSPI | AsyncProviderSPI],
        time_budget_s: float,
    ) -> list[ProviderResult]:
        """Invoke every provider concurrently; results follow provider order."""
        outcome = await self._run(task, providers, DispatchPolicy.BROADCAST, time_budget_s)
        return outcome.results

    async def fallback(
        self,
        task: Task,
        providers: Sequence[ProviderSPI | AsyncProviderSPI],
        time_budget_s: float,
    ) -> ProviderResult:
        """Return the first success in priority order."""
        outcome = await self._run(task, providers, DispatchPolicy.FALLBACK, time_budget_s)
        if outcome.winner is None:
            log_chain_failed(self._logger, task=task, results=outcome.results)
            raise AllProvidersFailed(
                f"all {len(outcome.results)} providers failed", failures=outcome.results
            )
        return outcome.winner

    async def dispatch(
        self,
        task: Task,
        providers: Sequence[ProviderSPI | AsyncProviderSPI],
        policy: DispatchPolicy | str,
        time_budget_s: float,
    ) -> list[ProviderResult] | ProviderResult:
        resolved = DispatchPolicy.coerce(policy)
        if resolved is DispatchPolicy.BROADCAST:
            return await self.broadcast(task, providers, time_budget_s)
        return await self.fallback(task, providers, time_budget_s)


__all__ = ["ProviderDispatcher", "classify_failure"]
