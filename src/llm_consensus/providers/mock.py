"""Mock provider that can deterministically trigger failure modes."""
from __future__ import annotations

from collections.abc import Iterable, Iterator
import random
import re
import time

from ..errors import (
    ProviderError,
    ProviderFailureError,
    ProviderTimeout,
    ProviderUnavailable,
    UnavailableReason,
)
from ..provider_spi import Task
from .base import BaseProvider

ErrorSpec = tuple[type[ProviderFailureError], str]
_ERROR_BY_MARKER: dict[str, ErrorSpec] = {
    "[TIMEOUT]": (ProviderTimeout, "simulated timeout"),
    "[UNAVAILABLE]": (ProviderUnavailable, "simulated unavailability"),
    "[ERROR]": (ProviderError, "simulated provider error"),
}


class MockProvider(BaseProvider):
    """Very small provider implementation for exercising the dispatcher.

    Answers with ``response`` when given, otherwise echoes the prompt. A marker
    such as ``[TIMEOUT]`` in the prompt raises the matching failure instead.
    """

    def __init__(
        self,
        name: str,
        base_latency_ms: int = 50,
        *,
        response: str | None = None,
        error_markers: Iterable[str] | None = None,
        jitter_ms: int = 20,
    ) -> None:
        super().__init__(name=name, model=name)
        self.base_latency_ms = base_latency_ms
        self.jitter_ms = jitter_ms
        self._response = response
        if error_markers is None:
            self._error_markers: set[str] = set(_ERROR_BY_MARKER)
        else:
            self._error_markers = {
                marker for marker in error_markers if marker in _ERROR_BY_MARKER
            }
        self.calls = 0

    def _maybe_raise_error(self, text: str) -> None:
        for marker in sorted(self._error_markers):
            if marker in text:
                exc_cls, message = _ERROR_BY_MARKER[marker]
                if exc_cls is ProviderUnavailable:
                    raise ProviderUnavailable(message, reason=UnavailableReason.UNKNOWN)
                raise exc_cls(message)

    def invoke(self, task: Task, time_budget_s: float) -> str:
        self.calls += 1
        text = task.prompt
        self._maybe_raise_error(text)

        latency = self.base_latency_ms + int(random.random() * self.jitter_ms)
        time.sleep(latency / 1000.0)

        if self._response is not None:
            return self._response
        return f"echo({self.name()}): {text}"

    def stream(self, task: Task, time_budget_s: float) -> Iterator[str]:
        # 単語ごとに区切る。連結すると invoke の応答と一致する
        answer = self.invoke(task, time_budget_s)
        for chunk in re.split(r"(?<=\s)(?=\S)", answer):
            if chunk:
                yield chunk


__all__ = ["MockProvider"]
