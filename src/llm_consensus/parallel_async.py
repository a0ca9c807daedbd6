"""Async fan-out helper used by the broadcast policy."""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")

AsyncWorker = Callable[[], Awaitable[T]]


def _normalize_concurrency(total: int, limit: int | None) -> int:
    if limit is None or limit <= 0:
        return max(total, 1)
    return max(1, min(total, limit))


async def run_parallel_all_async(
    workers: Sequence[AsyncWorker[T]],
    *,
    max_concurrency: int | None = None,
) -> list[T]:
    """Run every worker and return their results in worker order.

    If a worker raises, the remaining workers are cancelled and the error
    propagates.
    """
    if not workers:
        raise ValueError("workers must not be empty")

    semaphore = asyncio.Semaphore(_normalize_concurrency(len(workers), max_concurrency))

    async def _run(worker: AsyncWorker[T]) -> T:
        async with semaphore:
            return await worker()

    tasks = [asyncio.ensure_future(_run(worker)) for worker in workers]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


__all__ = ["AsyncWorker", "run_parallel_all_async"]
