from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol, cast

from .utils import extract_prompt_from_messages, normalize_message


@dataclass(frozen=True)
class TaskOptions:
    """Recognized per-task options forwarded to providers."""

    temperature: float | None = None
    max_output_size: int | None = None
    time_budget_s: float | None = None

    def __post_init__(self) -> None:
        if self.temperature is not None and self.temperature < 0:
            raise ValueError("temperature must be non-negative")
        if self.max_output_size is not None:
            if isinstance(self.max_output_size, bool) or not isinstance(self.max_output_size, int):
                raise TypeError("max_output_size must be an int")
            if self.max_output_size <= 0:
                raise ValueError("max_output_size must be a positive integer")
        if self.time_budget_s is not None and self.time_budget_s <= 0:
            raise ValueError("time_budget_s must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> TaskOptions:
        if not data:
            return cls()
        max_output = data.get("max_output_size", data.get("maxOutputSize"))
        budget = data.get("time_budget_s", data.get("timeBudget"))
        temperature = data.get("temperature")
        return cls(
            temperature=None if temperature is None else float(temperature),
            max_output_size=None if max_output is None else int(max_output),
            time_budget_s=None if budget is None else float(budget),
        )


def _new_task_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Task:
    prompt: str
    session_key: str
    options: TaskOptions = field(default_factory=TaskOptions)
    messages: tuple[Mapping[str, Any], ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    task_id: str = field(default_factory=_new_task_id)

    def __post_init__(self) -> None:
        session_key = (self.session_key or "").strip()
        if not session_key:
            raise ValueError("Task.session_key must be a non-empty string")
        object.__setattr__(self, "session_key", session_key)

        prompt = (self.prompt or "").strip()
        normalized_messages: list[Mapping[str, Any]] = []
        for entry in self.messages or ():
            if isinstance(entry, Mapping):
                normalized = normalize_message(entry)
                if normalized:
                    normalized_messages.append(MappingProxyType(dict(normalized)))
        if not normalized_messages and prompt:
            normalized_messages.append(MappingProxyType({"role": "user", "content": prompt}))
        if not prompt and normalized_messages:
            prompt = extract_prompt_from_messages(normalized_messages)
        if not prompt:
            raise ValueError("Task requires a prompt or at least one message")

        object.__setattr__(self, "prompt", prompt)
        object.__setattr__(self, "messages", tuple(normalized_messages))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    @property
    def chat_messages(self) -> list[Mapping[str, Any]]:
        return [dict(message) for message in self.messages]


class ProviderSPI(Protocol):
    def name(self) -> str: ...
    def invoke(self, task: Task, time_budget_s: float) -> str: ...


class AsyncProviderSPI(Protocol):
    def name(self) -> str: ...
    async def invoke_async(self, task: Task, time_budget_s: float) -> str: ...


class StreamingProviderSPI(Protocol):
    """Provider that can yield its answer incrementally.

    ``stream`` is synchronous like ``invoke``; the gateway drains it on a
    worker thread.
    """

    def name(self) -> str: ...
    def stream(self, task: Task, time_budget_s: float) -> Iterator[str]: ...


def supports_streaming(provider: object) -> bool:
    return callable(getattr(provider, "stream", None))


class _AsyncProviderAdapter(AsyncProviderSPI):
    def __init__(
        self,
        provider: ProviderSPI | AsyncProviderSPI,
        *,
        async_invoke: Callable[[Task, float], Awaitable[str]] | None = None,
    ) -> None:
        self._provider = provider
        self._async_invoke = async_invoke

    def name(self) -> str:
        return self._provider.name()

    async def invoke_async(self, task: Task, time_budget_s: float) -> str:
        if self._async_invoke is not None:
            return await self._async_invoke(task, time_budget_s)
        invoke = getattr(self._provider, "invoke", None)
        if not callable(invoke):
            raise TypeError("Provider does not expose a synchronous invoke() method")
        # 同期プロバイダはワーカースレッドで実行し、タイムアウト後の結果は破棄される
        return cast(str, await asyncio.to_thread(invoke, task, time_budget_s))


def ensure_async_provider(provider: ProviderSPI | AsyncProviderSPI) -> AsyncProviderSPI:
    invoke_async = getattr(provider, "invoke_async", None)
    if callable(invoke_async):
        if inspect.iscoroutinefunction(invoke_async):
            return cast(AsyncProviderSPI, provider)

        async def _invoke(task: Task, time_budget_s: float) -> str:
            result = invoke_async(task, time_budget_s)
            if inspect.isawaitable(result):
                return await cast(Awaitable[str], result)
            return cast(str, result)

        return _AsyncProviderAdapter(provider, async_invoke=_invoke)

    return _AsyncProviderAdapter(provider)


def provider_id(provider: ProviderSPI | AsyncProviderSPI | Any) -> str:
    name_attr = getattr(provider, "name", None)
    if callable(name_attr):
        return str(name_attr())
    return type(provider).__name__


ProviderLike = ProviderSPI | AsyncProviderSPI
ProviderList = Sequence[ProviderLike]


__all__ = [
    "Task",
    "TaskOptions",
    "ProviderSPI",
    "StreamingProviderSPI",
    "AsyncProviderSPI",
    "ProviderLike",
    "ProviderList",
    "ensure_async_provider",
    "provider_id",
    "supports_streaming",
]
