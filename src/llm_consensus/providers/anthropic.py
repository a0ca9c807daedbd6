"""Anthropic messages API provider."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import ProviderError, UnavailableReason
from ..provider_spi import Task
from ._http import create_session, post_json, SessionProtocol
from .base import BaseProvider, resolve_api_key

__all__ = ["AnthropicProvider"]

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1500


def _split_system(messages: Iterable[Mapping[str, Any]]) -> tuple[str | None, list[dict[str, Any]]]:
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if not isinstance(content, str):
            continue
        if role == "system":
            system_parts.append(content)
            continue
        converted.append({"role": "user" if role == "user" else "assistant", "content": content})
    system = "\n\n".join(system_parts) if system_parts else None
    return system, converted


def _coerce_text(payload: Any) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    content = payload.get("content")
    if not isinstance(content, Iterable):
        return None
    texts = [
        block["text"]
        for block in content
        if isinstance(block, Mapping) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    if not texts:
        return None
    return "".join(texts)


class AnthropicProvider(BaseProvider):
    def __init__(
        self,
        model: str = "claude-3-5-sonnet-20241022",
        *,
        name: str | None = None,
        api_key: str | None = None,
        base_url: str = ANTHROPIC_BASE_URL,
        session: SessionProtocol | None = None,
    ) -> None:
        super().__init__(name=name or f"anthropic:{model}", model=model)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._session = session or create_session()

    def _build_payload(self, task: Task) -> dict[str, Any]:
        system, messages = _split_system(task.messages)
        options = task.options
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_output_size or DEFAULT_MAX_TOKENS,
            "messages": messages or [{"role": "user", "content": task.prompt}],
        }
        if system:
            payload["system"] = system
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        return payload

    def invoke(self, task: Task, time_budget_s: float) -> str:
        api_key = resolve_api_key(
            self._api_key,
            "ANTHROPIC_API_KEY",
            provider=self.name(),
            reason=UnavailableReason.MISSING_ANTHROPIC_API_KEY,
        )
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        data = post_json(
            self._session,
            f"{self._base_url}/messages",
            self._build_payload(task),
            headers=headers,
            timeout=time_budget_s,
        )
        text = _coerce_text(data)
        if text is None:
            raise ProviderError(f"{self.name()}: response carried no text block")
        return text
