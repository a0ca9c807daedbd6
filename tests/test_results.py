from __future__ import annotations

import pytest

from llm_consensus.provider_spi import Task, TaskOptions
from llm_consensus.results import (
    ConsensusResult,
    FailureReason,
    ProviderFailure,
    ProviderResult,
    decode_payload,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"response": "ok"}', {"response": "ok"}),
        ("[1, 2]", [1, 2]),
        ('Sure:\n```json\n{"patch": "+x"}\n```\nthanks', {"patch": "+x"}),
        ('prefix {"confidence": 0.4} suffix', {"confidence": 0.4}),
        ("plain text", None),
        ('"just a string"', None),
        ("42", None),
        ("", None),
        ("{broken", None),
    ],
)
def test_decode_payload_variants(raw: str, expected: object) -> None:
    assert decode_payload(raw) == expected


def test_failure_result_exposes_reason_and_no_raw() -> None:
    result = ProviderResult(
        provider_id="p",
        task_id="t",
        outcome=ProviderFailure(reason=FailureReason.TIMEOUT, latency_ms=250),
    )
    assert not result.succeeded
    assert result.raw is None
    assert result.parsed_payload is None
    assert result.failure_reason is FailureReason.TIMEOUT
    assert result.latency_ms == 250


def test_consensus_result_validates_ranges() -> None:
    with pytest.raises(ValueError):
        ConsensusResult(response_text="x", confidence=1.2, risk_score=0.0)
    with pytest.raises(ValueError):
        ConsensusResult(response_text="x", confidence=0.5, risk_score=-0.1)
    result = ConsensusResult(
        response_text="x", confidence=0.5, risk_score=0.5, contributing_provider_ids=["a"]
    )
    assert result.contributing_provider_ids == ("a",)
    with pytest.raises(TypeError):
        result.metadata["new"] = 1  # type: ignore[index]


def test_task_defaults_messages_from_prompt_and_assigns_id() -> None:
    task = Task(prompt="  hello  ", session_key=" s1 ")
    other = Task(prompt="hello", session_key="s1")

    assert task.prompt == "hello"
    assert task.session_key == "s1"
    assert task.chat_messages == [{"role": "user", "content": "hello"}]
    assert task.task_id != other.task_id


def test_task_derives_prompt_from_last_user_message() -> None:
    task = Task(
        prompt="",
        session_key="s",
        messages=(
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": ["second", " part "]},
        ),
    )
    assert task.prompt == "second\npart"
    assert len(task.messages) == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"prompt": "", "session_key": "s"},
        {"prompt": "x", "session_key": "  "},
        {"prompt": "", "session_key": "s", "messages": ({"role": "user", "content": " "},)},
    ],
)
def test_task_rejects_missing_prompt_or_session(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        Task(**kwargs)  # type: ignore[arg-type]


def test_task_options_validation_and_aliases() -> None:
    options = TaskOptions.from_mapping({"maxOutputSize": 128, "timeBudget": 2, "temperature": 0})
    assert options == TaskOptions(temperature=0.0, max_output_size=128, time_budget_s=2.0)
    assert TaskOptions.from_mapping(None) == TaskOptions()

    with pytest.raises(ValueError):
        TaskOptions(temperature=-0.1)
    with pytest.raises(ValueError):
        TaskOptions(max_output_size=0)
    with pytest.raises(TypeError):
        TaskOptions(max_output_size=1.5)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        TaskOptions(time_budget_s=0)
