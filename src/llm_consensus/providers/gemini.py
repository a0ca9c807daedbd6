"""Gemini provider implementation backed by the google-genai SDK."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, cast, Protocol

from google import genai

from ..errors import ProviderError, ProviderFailureError, ProviderTimeout, UnavailableReason
from ..provider_spi import Task
from .base import BaseProvider, resolve_api_key

__all__ = ["GeminiProvider", "parse_gemini_messages", "translate_gemini_error"]


class GeminiModelsAPI(Protocol):
    def generate_content(
        self,
        *,
        model: str,
        contents: Sequence[Mapping[str, Any]] | None,
        config: Mapping[str, Any] | None = None,
    ) -> Any:
        ...


class GeminiClient(Protocol):
    models: GeminiModelsAPI


def parse_gemini_messages(
    messages: Sequence[Mapping[str, Any]] | None,
) -> tuple[str | None, list[dict[str, Any]]]:
    """Convert chat messages into a system instruction and Gemini contents."""
    if not messages:
        return None, []
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []
    for entry in messages:
        content = entry.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        role = str(entry.get("role", "user")).strip() or "user"
        if role == "system":
            system_parts.append(content.strip())
            continue
        # Gemini は assistant ロールを model と呼ぶ
        contents.append(
            {"role": "model" if role == "assistant" else "user", "parts": [{"text": content.strip()}]}
        )
    return ("\n\n".join(system_parts) or None), contents


def translate_gemini_error(exc: Exception) -> Exception:
    if isinstance(exc, ProviderFailureError):
        return exc
    exc_type = type(exc)
    names = [exc_type.__name__, exc_type.__module__ or ""]
    if any("timeout" in name.lower() for name in names):
        return ProviderTimeout(str(exc))
    status = getattr(exc, "code", None) or getattr(exc, "status", None)
    text = str(status or "").upper()
    if "DEADLINE_EXCEEDED" in text or text in {"408", "504"}:
        return ProviderTimeout(str(exc))
    return ProviderError(str(exc) or exc_type.__name__)


class GeminiProvider(BaseProvider):
    """Provider implementation backed by the Gemini SDK (models API)."""

    def __init__(
        self,
        model: str = "gemini-1.5-flash",
        *,
        name: str | None = None,
        client: GeminiClient | None = None,
        api_key: str | None = None,
        generation_config: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(name=name or f"gemini:{model}", model=model)
        self._client = client
        self._api_key = api_key
        self._generation_config = dict(generation_config or {})

    def _resolve_client(self) -> GeminiClient:
        if self._client is not None:
            return self._client
        api_key = resolve_api_key(
            self._api_key,
            "GEMINI_API_KEY",
            provider=self.name(),
            reason=UnavailableReason.MISSING_GEMINI_API_KEY,
        )
        self._client = cast(GeminiClient, genai.Client(api_key=api_key))
        return self._client

    def _build_config(self, task: Task, system: str | None) -> dict[str, Any]:
        config = dict(self._generation_config)
        if task.options.temperature is not None:
            config["temperature"] = task.options.temperature
        if task.options.max_output_size is not None:
            config["max_output_tokens"] = task.options.max_output_size
        if system:
            config["system_instruction"] = system
        return config

    def invoke(self, task: Task, time_budget_s: float) -> str:
        client = self._resolve_client()
        system, contents = parse_gemini_messages(task.messages)
        if not contents:
            contents = [{"role": "user", "parts": [{"text": task.prompt}]}]
        config = self._build_config(task, system)
        try:
            response = client.models.generate_content(
                model=cast(str, self.model),
                contents=contents,
                config=config or None,
            )
        except Exception as exc:
            raise translate_gemini_error(exc) from exc

        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise ProviderError(f"{self.name()}: response carried no text")
        return text
