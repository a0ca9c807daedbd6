"""Caller-facing entry point composing serializer, dispatcher and fuser."""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
import logging
import threading
from typing import cast

from .audit import AuditRecord, AuditSink, JsonlAuditSink
from .config import DispatchPolicy, GatewayConfig
from .dispatch_logging import log_consensus_result, resolve_event_logger
from .dispatcher import ProviderDispatcher
from .errors import ProviderTimeout
from .fusion import ConsensusFuser
from .history import ConversationStore
from .observability import combine_event_loggers, EventLogger
from .provider_spi import (
    AsyncProviderSPI,
    provider_id,
    ProviderSPI,
    StreamingProviderSPI,
    supports_streaming,
    Task,
    TaskOptions,
)
from .results import ConsensusResult
from .session_queue import SessionSerializer

_LOGGER = logging.getLogger(__name__)

Providers = Sequence[ProviderSPI | AsyncProviderSPI]
SubmitResult = ConsensusResult | str


class ConsensusGateway:
    """Serializes work per session, dispatches it and fuses broadcast answers.

    ``submit`` returns a :class:`ConsensusResult` for the broadcast policy and
    the winning raw answer for the fallback policy. Completed submissions are
    handed to the optional audit sink in the background; :meth:`drain` waits
    for those appends.
    """

    def __init__(
        self,
        *,
        config: GatewayConfig | None = None,
        logger: EventLogger | None = None,
        dispatcher: ProviderDispatcher | None = None,
        fuser: ConsensusFuser | None = None,
        serializer: SessionSerializer | None = None,
        histories: ConversationStore | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        self._config = config or GatewayConfig()
        self._logger = combine_event_loggers(logger)
        self._dispatcher = dispatcher or ProviderDispatcher(
            self._logger, max_concurrency=self._config.max_concurrency
        )
        self._fuser = fuser or ConsensusFuser(self._config.fusion)
        self._serializer = serializer or SessionSerializer()
        self._histories = histories or ConversationStore(self._config.history_limit)
        self._audit_sink = audit_sink
        self._audit_tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig,
        *,
        logger: EventLogger | None = None,
    ) -> ConsensusGateway:
        audit_sink = JsonlAuditSink(config.audit_path) if config.audit_path else None
        return cls(
            config=config,
            logger=resolve_event_logger(logger, config.metrics_path),
            audit_sink=audit_sink,
        )

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def serializer(self) -> SessionSerializer:
        return self._serializer

    @property
    def histories(self) -> ConversationStore:
        return self._histories

    def resolve_time_budget(self, task: Task, time_budget_s: float | None = None) -> float:
        if time_budget_s is not None:
            budget = float(time_budget_s)
        elif task.options.time_budget_s is not None:
            budget = task.options.time_budget_s
        else:
            budget = self._config.default_time_budget_s
        if budget <= 0:
            raise ValueError("time budget must be positive")
        return budget

    def _resolve_policy(self, policy: DispatchPolicy | str | None) -> DispatchPolicy:
        if policy is None:
            return self._config.default_policy
        return DispatchPolicy.coerce(policy)

    async def submit(
        self,
        session_key: str,
        task: Task,
        providers: Providers,
        policy: DispatchPolicy | str | None = None,
        time_budget_s: float | None = None,
    ) -> SubmitResult:
        if task.session_key != session_key:
            raise ValueError(
                f"task session key {task.session_key!r} does not match {session_key!r}"
            )
        if not providers:
            raise ValueError("submit requires at least one provider")
        resolved = self._resolve_policy(policy)
        budget = self.resolve_time_budget(task, time_budget_s)

        async def _work() -> SubmitResult:
            return await self._execute(task, providers, resolved, budget)

        result = await self._serializer.run(session_key, _work)
        self._record_audit(session_key, task, result)
        return result

    async def chat(
        self,
        session_key: str,
        message: str,
        providers: Providers,
        policy: DispatchPolicy | str = DispatchPolicy.FALLBACK,
        *,
        system_prompt: str | None = None,
        options: TaskOptions | None = None,
        time_budget_s: float | None = None,
    ) -> SubmitResult:
        """Run one conversational turn for ``session_key``.

        The user turn is appended to the session history before dispatch and the
        assistant turn after a successful answer, both inside the session's
        serialized work.
        """
        if not providers:
            raise ValueError("chat requires at least one provider")
        resolved = self._resolve_policy(policy)
        task_options = options or TaskOptions()
        task_holder: list[Task] = []

        async def _work() -> SubmitResult:
            history = self._histories.get(session_key)
            history.append("user", message)
            messages = history.as_messages()
            if system_prompt:
                messages.insert(0, {"role": "system", "content": system_prompt})
            task = Task(
                prompt=message,
                session_key=session_key,
                options=task_options,
                messages=tuple(messages),
            )
            task_holder.append(task)
            result = await self._execute(
                task, providers, resolved, self.resolve_time_budget(task, time_budget_s)
            )
            if isinstance(result, str):
                history.append("assistant", result)
            elif result.has_contributors:
                history.append("assistant", result.response_text)
            return result

        result = await self._serializer.run(session_key, _work)
        self._record_audit(session_key, task_holder[0], result)
        return result

    async def stream_chat(
        self,
        session_key: str,
        message: str,
        providers: Providers,
        *,
        system_prompt: str | None = None,
        options: TaskOptions | None = None,
        time_budget_s: float | None = None,
    ) -> AsyncIterator[str]:
        """Stream one conversational turn from the first streaming provider.

        Without a streaming-capable provider the whole :meth:`chat` answer is
        yielded as a single chunk. The stream holds the session like any other
        work. Both turns are appended to the history only once the stream has
        completed, and a stream that overruns the time budget raises
        :class:`ProviderTimeout`.
        """
        if not providers:
            raise ValueError("stream_chat requires at least one provider")
        streamer = next((provider for provider in providers if supports_streaming(provider)), None)
        if streamer is None:
            result = await self.chat(
                session_key,
                message,
                providers,
                DispatchPolicy.FALLBACK,
                system_prompt=system_prompt,
                options=options,
                time_budget_s=time_budget_s,
            )
            yield result if isinstance(result, str) else result.response_text
            return

        loop = asyncio.get_running_loop()
        chunks: asyncio.Queue[str | None] = asyncio.Queue()
        stop = threading.Event()
        task_options = options or TaskOptions()
        task_holder: list[Task] = []

        def _pump(task: Task, budget: float) -> str:
            parts: list[str] = []
            for chunk in cast(StreamingProviderSPI, streamer).stream(task, budget):
                if stop.is_set():
                    break
                parts.append(chunk)
                loop.call_soon_threadsafe(chunks.put_nowait, chunk)
            return "".join(parts)

        async def _work() -> str:
            try:
                history = self._histories.get(session_key)
                messages = history.as_messages()
                messages.append({"role": "user", "content": message})
                if system_prompt:
                    messages.insert(0, {"role": "system", "content": system_prompt})
                task = Task(
                    prompt=message,
                    session_key=session_key,
                    options=task_options,
                    messages=tuple(messages),
                )
                task_holder.append(task)
                budget = self.resolve_time_budget(task, time_budget_s)
                try:
                    text = await asyncio.wait_for(
                        asyncio.to_thread(_pump, task, budget), timeout=budget
                    )
                except TimeoutError as exc:
                    raise ProviderTimeout(
                        f"{provider_id(streamer)} stream exceeded {budget}s"
                    ) from exc
                history.append("user", message)
                history.append("assistant", text)
                return text
            finally:
                stop.set()
                chunks.put_nowait(None)

        handle = self._serializer.enqueue(session_key, _work)
        try:
            while True:
                chunk = await chunks.get()
                if chunk is None:
                    break
                yield chunk
            text = await handle
        finally:
            if not handle.done():
                stop.set()
                handle.cancel()
        self._record_audit(session_key, task_holder[0], text)

    async def clear_history(self, session_key: str) -> bool:
        """Forget the conversation history of ``session_key``.

        The drop is queued behind the session's pending work, so a chat turn
        in flight finishes first. Returns whether a history existed.
        """

        async def _work() -> bool:
            return self._histories.drop(session_key)

        return await self._serializer.run(session_key, _work)

    async def _execute(
        self,
        task: Task,
        providers: Providers,
        policy: DispatchPolicy,
        time_budget_s: float,
    ) -> SubmitResult:
        if policy is DispatchPolicy.BROADCAST:
            results = await self._dispatcher.broadcast(task, providers, time_budget_s)
            # LCS スコアリングは重いのでイベントループ外で実行する
            consensus = await asyncio.to_thread(self._fuser.fuse, results)
            log_consensus_result(self._logger, task=task, consensus=consensus)
            return consensus
        winner = await self._dispatcher.fallback(task, providers, time_budget_s)
        return winner.raw or ""

    def _record_audit(self, session_key: str, task: Task, result: SubmitResult) -> None:
        if self._audit_sink is None:
            return
        record = AuditRecord(session_key=session_key, task=task, result=result)
        audit_task = asyncio.get_running_loop().create_task(self._append_audit(record))
        self._audit_tasks.add(audit_task)
        audit_task.add_done_callback(self._audit_tasks.discard)

    async def _append_audit(self, record: AuditRecord) -> None:
        sink = self._audit_sink
        if sink is None:
            return
        try:
            await asyncio.to_thread(sink.append, record)
        except Exception:  # noqa: BLE001
            _LOGGER.warning(
                "audit append failed for session %s", record.session_key, exc_info=True
            )

    async def drain(self) -> None:
        """Wait for every pending audit append."""
        while self._audit_tasks:
            await asyncio.gather(*tuple(self._audit_tasks))


__all__ = ["ConsensusGateway", "SubmitResult"]
