"""Broadcast strategy: every provider, concurrently, no early exit."""
from __future__ import annotations

from ..parallel_async import run_parallel_all_async
from ..results import ProviderResult
from .context import DispatchContext, StrategyResult


class BroadcastStrategy:
    policy = "broadcast"

    async def run(self, context: DispatchContext) -> StrategyResult:
        def _make_worker(index: int):
            provider, async_provider = context.providers[index]

            async def _worker() -> ProviderResult:
                return await context.attempt(index + 1, provider, async_provider)

            return _worker

        workers = [_make_worker(index) for index in range(context.total_providers)]
        results = await run_parallel_all_async(
            workers, max_concurrency=context.max_concurrency
        )
        context.results = list(results)
        return StrategyResult(context.results)
