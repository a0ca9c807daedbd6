from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from requests import exceptions as requests_exceptions

from llm_consensus.errors import (
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
    UnavailableReason,
)
from llm_consensus.provider_spi import Task, TaskOptions
from llm_consensus.providers import factory as providers_factory
from llm_consensus.providers import gemini as gemini_module
from llm_consensus.providers.anthropic import AnthropicProvider
from llm_consensus.providers.gemini import (
    GeminiProvider,
    parse_gemini_messages,
    translate_gemini_error,
)
from llm_consensus.providers.mock import MockProvider
from llm_consensus.providers.openai_compat import OpenAICompatibleProvider
from tests.helpers.fakes import FakeResponse, FakeSession


def _chat_task(**options: Any) -> Task:
    return Task(
        prompt="",
        session_key="s",
        messages=(
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi"},
            {"role": "user", "content": "again"},
        ),
        options=TaskOptions(**options),
    )


def test_openai_provider_posts_chat_completion() -> None:
    session = FakeSession(
        FakeResponse(payload={"choices": [{"message": {"content": "answer"}}]})
    )
    provider = OpenAICompatibleProvider("gpt-4o-mini", api_key="sk-test", session=session)

    text = provider.invoke(_chat_task(temperature=0.2, max_output_size=64), 3.0)

    assert text == "answer"
    assert provider.name() == "openai:gpt-4o-mini"
    [call] = session.calls
    assert call["url"] == "https://api.openai.com/v1/chat/completions"
    assert call["timeout"] == 3.0
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    body = call["json"]
    assert body["model"] == "gpt-4o-mini"
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 64
    assert [message["role"] for message in body["messages"]] == [
        "system",
        "user",
        "assistant",
        "user",
    ]
    assert session.response.closed


def test_openai_provider_defaults_temperature_and_reads_env_key(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    session = FakeSession(FakeResponse(payload={"choices": [{"text": "legacy"}]}))
    provider = OpenAICompatibleProvider("gpt-4o-mini", session=session)

    assert provider.invoke(Task(prompt="q", session_key="s"), 1.0) == "legacy"
    [call] = session.calls
    assert call["headers"]["Authorization"] == "Bearer env-key"
    assert call["json"]["temperature"] == 0.7
    assert "max_tokens" not in call["json"]


def test_missing_key_is_unavailable_without_network_call() -> None:
    session = FakeSession()
    provider = OpenAICompatibleProvider("gpt-4o-mini", session=session)

    with pytest.raises(ProviderUnavailable) as excinfo:
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)

    assert excinfo.value.reason is UnavailableReason.MISSING_OPENAI_API_KEY
    assert session.calls == []


def test_deepseek_uses_its_own_endpoint_and_key(monkeypatch: pytest.MonkeyPatch) -> None:
    session = FakeSession(
        FakeResponse(payload={"choices": [{"message": {"content": "deep"}}]})
    )
    provider = OpenAICompatibleProvider.deepseek(session=session)

    with pytest.raises(ProviderUnavailable) as excinfo:
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)
    assert excinfo.value.reason is UnavailableReason.MISSING_DEEPSEEK_API_KEY

    monkeypatch.setenv("DEEPSEEK_API_KEY", "ds-key")
    assert provider.invoke(Task(prompt="q", session_key="s"), 1.0) == "deep"
    assert provider.name() == "deepseek:deepseek-chat"
    assert session.calls[0]["url"] == "https://api.deepseek.com/v1/chat/completions"


@pytest.mark.parametrize(
    ("status", "expected"),
    [(408, ProviderTimeout), (504, ProviderTimeout), (500, ProviderError), (429, ProviderError)],
)
def test_http_status_errors_are_normalized(status: int, expected: type[Exception]) -> None:
    session = FakeSession(FakeResponse(status_code=status))
    provider = OpenAICompatibleProvider("m", api_key="k", session=session)

    with pytest.raises(expected):
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)


def test_transport_timeout_becomes_provider_timeout() -> None:
    session = FakeSession(error=requests_exceptions.ReadTimeout("read timed out"))
    provider = OpenAICompatibleProvider("m", api_key="k", session=session)

    with pytest.raises(ProviderTimeout):
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)


def test_connection_error_becomes_provider_error() -> None:
    session = FakeSession(error=requests_exceptions.ConnectionError("refused"))
    provider = OpenAICompatibleProvider("m", api_key="k", session=session)

    with pytest.raises(ProviderError):
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)


def test_response_without_content_is_provider_error() -> None:
    session = FakeSession(FakeResponse(payload={"choices": []}))
    provider = OpenAICompatibleProvider("m", api_key="k", session=session)

    with pytest.raises(ProviderError):
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)


def test_openai_provider_streams_delta_content() -> None:
    lines = [
        b'data: {"choices": [{"delta": {"role": "assistant"}}]}',
        b"",
        b'data: {"choices": [{"delta": {"content": "Hel"}}]}',
        b": keep-alive",
        b'data: {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]}',
        b"data: [DONE]",
    ]
    session = FakeSession(FakeResponse(lines=lines))
    provider = OpenAICompatibleProvider("m", api_key="k", session=session)

    chunks = list(provider.stream(Task(prompt="q", session_key="s"), 2.0))

    assert chunks == ["Hel", "lo"]
    [call] = session.calls
    assert call["stream"] is True
    assert call["json"]["stream"] is True
    assert session.response.closed


def test_openai_stream_status_error_is_normalized() -> None:
    session = FakeSession(FakeResponse(status_code=504))
    provider = OpenAICompatibleProvider("m", api_key="k", session=session)

    with pytest.raises(ProviderTimeout):
        list(provider.stream(Task(prompt="q", session_key="s"), 1.0))
    assert session.response.closed


def test_anthropic_provider_splits_system_prompt() -> None:
    session = FakeSession(
        FakeResponse(
            payload={
                "content": [
                    {"type": "text", "text": "part one, "},
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": "part two"},
                ]
            }
        )
    )
    provider = AnthropicProvider(api_key="ak", session=session)

    text = provider.invoke(_chat_task(temperature=0.1), 2.0)

    assert text == "part one, part two"
    [call] = session.calls
    assert call["url"] == "https://api.anthropic.com/v1/messages"
    assert call["headers"]["x-api-key"] == "ak"
    assert call["headers"]["anthropic-version"] == "2023-06-01"
    body = call["json"]
    assert body["system"] == "be brief"
    assert body["max_tokens"] == 1500
    assert body["temperature"] == 0.1
    assert [message["role"] for message in body["messages"]] == ["user", "assistant", "user"]


def test_anthropic_provider_requires_key() -> None:
    provider = AnthropicProvider(session=FakeSession())
    with pytest.raises(ProviderUnavailable) as excinfo:
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)
    assert excinfo.value.reason is UnavailableReason.MISSING_ANTHROPIC_API_KEY


class _FakeModels:
    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response = response if response is not None else SimpleNamespace(text="gemini says")
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def test_gemini_provider_translates_roles_and_options() -> None:
    models = _FakeModels()
    provider = GeminiProvider(
        client=SimpleNamespace(models=models),
        generation_config={"top_p": 0.9},
    )

    assert provider.invoke(_chat_task(temperature=0.3, max_output_size=32), 1.0) == "gemini says"

    [call] = models.calls
    assert call["model"] == "gemini-1.5-flash"
    assert [entry["role"] for entry in call["contents"]] == ["user", "model", "user"]
    assert call["config"] == {
        "top_p": 0.9,
        "temperature": 0.3,
        "max_output_tokens": 32,
        "system_instruction": "be brief",
    }


def test_gemini_provider_builds_sdk_client_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[str] = []
    models = _FakeModels()

    def fake_client(*, api_key: str) -> Any:
        created.append(api_key)
        return SimpleNamespace(models=models)

    monkeypatch.setattr(gemini_module.genai, "Client", fake_client)
    provider = GeminiProvider("gemini-2.0-flash")

    with pytest.raises(ProviderUnavailable):
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)

    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    assert provider.invoke(Task(prompt="q", session_key="s"), 1.0) == "gemini says"
    assert created == ["g-key"]
    assert models.calls[0]["config"] is None


def test_gemini_errors_are_translated() -> None:
    assert isinstance(translate_gemini_error(TimeoutError("slow")), ProviderTimeout)
    coded = RuntimeError("deadline")
    coded.code = "DEADLINE_EXCEEDED"  # type: ignore[attr-defined]
    assert isinstance(translate_gemini_error(coded), ProviderTimeout)
    assert isinstance(translate_gemini_error(ValueError("bad")), ProviderError)

    models = _FakeModels(error=RuntimeError("quota"))
    provider = GeminiProvider(client=SimpleNamespace(models=models))
    with pytest.raises(ProviderError):
        provider.invoke(Task(prompt="q", session_key="s"), 1.0)


def test_parse_gemini_messages_skips_blank_entries() -> None:
    system, contents = parse_gemini_messages(
        [{"role": "system", "content": "sys"}, {"role": "user", "content": "  "}]
    )
    assert system == "sys"
    assert contents == []
    assert parse_gemini_messages(None) == (None, [])


def test_mock_provider_echoes_prompt_and_counts_calls() -> None:
    provider = MockProvider("m1")
    assert provider.invoke(Task(prompt="ping", session_key="s"), 1.0) == "echo(m1): ping"
    assert provider.calls == 1

    canned = MockProvider("m2", response='{"response": "fixed"}')
    assert canned.invoke(Task(prompt="ping", session_key="s"), 1.0) == '{"response": "fixed"}'


def test_mock_provider_streams_words_of_its_answer() -> None:
    provider = MockProvider("m", response="one  two\nthree")
    chunks = list(provider.stream(Task(prompt="ping", session_key="s"), 1.0))
    assert chunks == ["one  ", "two\n", "three"]
    assert "".join(chunks) == "one  two\nthree"


@pytest.mark.parametrize(
    ("marker", "expected"),
    [
        ("[TIMEOUT]", ProviderTimeout),
        ("[UNAVAILABLE]", ProviderUnavailable),
        ("[ERROR]", ProviderError),
    ],
)
def test_mock_provider_markers_raise(marker: str, expected: type[Exception]) -> None:
    provider = MockProvider("m")
    with pytest.raises(expected):
        provider.invoke(Task(prompt=f"please {marker}", session_key="s"), 1.0)


def test_mock_provider_markers_can_be_disabled() -> None:
    provider = MockProvider("m", error_markers=())
    assert provider.invoke(Task(prompt="[ERROR]", session_key="s"), 1.0) == "echo(m): [ERROR]"


def test_parse_provider_spec_keeps_colons_in_model() -> None:
    assert providers_factory.parse_provider_spec("mock:gemma3n:e2b") == ("mock", "gemma3n:e2b")
    with pytest.raises(ValueError):
        providers_factory.parse_provider_spec("openai")
    with pytest.raises(ValueError):
        providers_factory.parse_provider_spec("openai:")


def test_create_providers_builds_defaults_and_rejects_duplicates() -> None:
    providers = providers_factory.create_providers(
        ["mock:a", "openai:gpt-4o-mini", "deepseek:deepseek-chat", "anthropic:claude", "gemini:flash"]
    )
    assert [provider.name() for provider in providers] == [
        "a",
        "openai:gpt-4o-mini",
        "deepseek:deepseek-chat",
        "anthropic:claude",
        "gemini:flash",
    ]
    with pytest.raises(ValueError, match="duplicate"):
        providers_factory.create_providers(["mock:a", "mock:a"])


def test_create_provider_from_spec_rejects_unknown_prefix() -> None:
    with pytest.raises(ValueError, match="unsupported provider prefix"):
        providers_factory.create_provider_from_spec("unknown:model")


def test_create_provider_from_spec_supports_overrides() -> None:
    sentinel = MockProvider("override")
    provider = providers_factory.create_provider_from_spec(
        "openai:anything", factories={"openai": lambda model: sentinel}
    )
    assert provider is sentinel


def test_provider_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRIMARY_PROVIDER", "mock:primary")
    provider = providers_factory.provider_from_environment("PRIMARY_PROVIDER")
    assert provider is not None and provider.name() == "primary"

    monkeypatch.setenv("SHADOW_PROVIDER", "none")
    assert providers_factory.provider_from_environment("SHADOW_PROVIDER", optional=True) is None
    with pytest.raises(ValueError):
        providers_factory.provider_from_environment("SHADOW_PROVIDER")
