"""Per-session FIFO serialization of asynchronous work."""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, MutableMapping
import functools
import logging
import threading
from typing import TypeVar

T = TypeVar("T")

SessionWork = Callable[[], Awaitable[T]]

_LOGGER = logging.getLogger(__name__)


class SessionSerializer:
    """Run work for the same session key strictly one at a time, in order.

    Each key maps to the completion signal of its most recently admitted work.
    New work waits on that signal and publishes its own before starting, so
    admissions for one key form a chain while different keys stay independent.
    The entry for a key is removed once its last admitted work has finished.
    """

    def __init__(self, tails: MutableMapping[str, asyncio.Future[None]] | None = None) -> None:
        self._tails: MutableMapping[str, asyncio.Future[None]] = {} if tails is None else tails
        self._lock = threading.Lock()

    def enqueue(self, session_key: str, work: SessionWork[T]) -> asyncio.Task[T]:
        """Schedule ``work`` behind every earlier admission for ``session_key``.

        Never blocks. The returned task resolves with the outcome of ``work``.
        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        signal: asyncio.Future[None] = loop.create_future()
        with self._lock:
            previous = self._tails.get(session_key)
            self._tails[session_key] = signal
            handle = loop.create_task(self._execute(previous, work))
        handle.add_done_callback(
            functools.partial(self._on_done, session_key, previous, signal)
        )
        return handle

    async def run(self, session_key: str, work: SessionWork[T]) -> T:
        return await self.enqueue(session_key, work)

    async def _execute(self, previous: asyncio.Future[None] | None, work: SessionWork[T]) -> T:
        if previous is not None and not previous.done():
            await asyncio.shield(previous)
        return await work()

    def _on_done(
        self,
        session_key: str,
        previous: asyncio.Future[None] | None,
        signal: asyncio.Future[None],
        _handle: asyncio.Task[object],
    ) -> None:
        # a handle cancelled while queued must not release its successors early
        if previous is not None and not previous.done():
            previous.add_done_callback(lambda _: self._release(session_key, signal))
            return
        self._release(session_key, signal)

    def _release(self, session_key: str, signal: asyncio.Future[None]) -> None:
        if not signal.done():
            signal.set_result(None)
        with self._lock:
            if self._tails.get(session_key) is signal:
                del self._tails[session_key]
                _LOGGER.debug("session %s drained", session_key)

    def has_pending(self, session_key: str) -> bool:
        with self._lock:
            return session_key in self._tails

    def pending_sessions(self) -> list[str]:
        with self._lock:
            return list(self._tails)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tails)

    def clear(self) -> None:
        """Forget every tracked session; in-flight work still completes."""
        with self._lock:
            self._tails.clear()


__all__ = ["SessionSerializer", "SessionWork"]
