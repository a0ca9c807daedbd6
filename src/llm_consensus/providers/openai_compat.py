from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
import os
from typing import Any

from ..errors import ProviderError, UnavailableReason
from ..provider_spi import Task
from ._http import create_session, post_json, SessionProtocol, stream_events
from .base import BaseProvider, resolve_api_key

__all__ = ["OpenAICompatibleProvider"]

OPENAI_BASE_URL = "https://api.openai.com/v1"
DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"
DEFAULT_TEMPERATURE = 0.7


def _coerce_text(payload: Any) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, Iterable):
        return None
    for choice in choices:
        if not isinstance(choice, Mapping):
            continue
        message = choice.get("message")
        if isinstance(message, Mapping):
            content = message.get("content")
            if isinstance(content, str):
                return content
        text = choice.get("text")
        if isinstance(text, str):
            return text
    return None


class OpenAICompatibleProvider(BaseProvider):
    """Chat-completions client for OpenAI and API-compatible backends."""

    def __init__(
        self,
        model: str,
        *,
        name: str | None = None,
        api_key: str | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        base_url: str | None = None,
        session: SessionProtocol | None = None,
        unavailable_reason: UnavailableReason = UnavailableReason.MISSING_OPENAI_API_KEY,
    ) -> None:
        super().__init__(name=name or f"openai:{model}", model=model)
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._base_url = (base_url or os.getenv("OPENAI_BASE_URL") or OPENAI_BASE_URL).rstrip("/")
        self._session = session or create_session()
        self._unavailable_reason = unavailable_reason

    @classmethod
    def deepseek(
        cls,
        model: str = "deepseek-chat",
        *,
        api_key: str | None = None,
        session: SessionProtocol | None = None,
    ) -> OpenAICompatibleProvider:
        return cls(
            model,
            name=f"deepseek:{model}",
            api_key=api_key,
            api_key_env="DEEPSEEK_API_KEY",
            base_url=DEEPSEEK_BASE_URL,
            session=session,
            unavailable_reason=UnavailableReason.MISSING_DEEPSEEK_API_KEY,
        )

    def _build_payload(self, task: Task) -> dict[str, Any]:
        options = task.options
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": task.chat_messages,
            "temperature": (
                DEFAULT_TEMPERATURE if options.temperature is None else options.temperature
            ),
        }
        if options.max_output_size is not None:
            payload["max_tokens"] = options.max_output_size
        return payload

    def _headers(self) -> dict[str, str]:
        api_key = resolve_api_key(
            self._api_key,
            self._api_key_env,
            provider=self.name(),
            reason=self._unavailable_reason,
        )
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def invoke(self, task: Task, time_budget_s: float) -> str:
        headers = self._headers()
        data = post_json(
            self._session,
            f"{self._base_url}/chat/completions",
            self._build_payload(task),
            headers=headers,
            timeout=time_budget_s,
        )
        text = _coerce_text(data)
        if text is None:
            raise ProviderError(f"{self.name()}: response carried no message content")
        return text

    def stream(self, task: Task, time_budget_s: float) -> Iterator[str]:
        """Yield ``delta.content`` chunks of a streamed chat completion."""
        headers = self._headers()
        payload = self._build_payload(task)
        payload["stream"] = True
        events = stream_events(
            self._session,
            f"{self._base_url}/chat/completions",
            payload,
            headers=headers,
            timeout=time_budget_s,
        )
        for event in events:
            choices = event.get("choices")
            if not isinstance(choices, Iterable):
                continue
            for choice in choices:
                delta = choice.get("delta") if isinstance(choice, Mapping) else None
                if isinstance(delta, Mapping):
                    content = delta.get("content")
                    if isinstance(content, str) and content:
                        yield content
