"""Fallback strategy: providers in priority order until one succeeds."""
from __future__ import annotations

from .context import DispatchContext, StrategyResult


class FallbackStrategy:
    policy = "fallback"

    async def run(self, context: DispatchContext) -> StrategyResult:
        for attempt_index, (provider, async_provider) in enumerate(context.providers, start=1):
            result = await context.attempt(attempt_index, provider, async_provider)
            context.results.append(result)
            if result.succeeded:
                return StrategyResult(list(context.results), winner=result)
        return StrategyResult(list(context.results))
