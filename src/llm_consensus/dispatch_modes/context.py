"""Shared context and result types for dispatch strategies."""
from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from ..observability import EventLogger
from ..provider_spi import AsyncProviderSPI, ProviderSPI, Task
from ..results import ProviderResult

AttemptFn = Callable[
    [int, ProviderSPI | AsyncProviderSPI, AsyncProviderSPI],
    Awaitable[ProviderResult],
]


@dataclass
class DispatchContext:
    task: Task
    providers: Sequence[tuple[ProviderSPI | AsyncProviderSPI, AsyncProviderSPI]]
    time_budget_s: float
    attempt: AttemptFn
    event_logger: EventLogger | None = None
    max_concurrency: int | None = None
    results: list[ProviderResult] = field(default_factory=list)

    @property
    def total_providers(self) -> int:
        return len(self.providers)


@dataclass
class StrategyResult:
    results: list[ProviderResult]
    winner: ProviderResult | None = None

    @property
    def attempt_count(self) -> int:
        return len(self.results)


class DispatchStrategy(Protocol):
    policy: str

    async def run(self, context: DispatchContext) -> StrategyResult:  # pragma: no cover - protocol
        ...
