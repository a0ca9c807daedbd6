from __future__ import annotations

import pytest

from tests.helpers.fakes import CapturingLogger


@pytest.fixture(autouse=True)
def _fast_mock_provider_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("llm_consensus.providers.mock.time.sleep", lambda *args, **kwargs: None)


@pytest.fixture(autouse=True)
def _clear_provider_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    for variable in (
        "OPENAI_API_KEY",
        "OPENAI_BASE_URL",
        "DEEPSEEK_API_KEY",
        "ANTHROPIC_API_KEY",
        "GEMINI_API_KEY",
    ):
        monkeypatch.delenv(variable, raising=False)


@pytest.fixture
def capturing_logger() -> CapturingLogger:
    return CapturingLogger()
