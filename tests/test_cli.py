from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from llm_consensus.cli import runner as cli_runner
from llm_consensus.cli.args import parse_args
from llm_consensus.cli.config import (
    build_gateway_config,
    JsonLogFormatter,
    load_env_file,
)
from llm_consensus.cli.io import build_task
from llm_consensus.config import DispatchPolicy
from llm_consensus.errors import ConfigError
from llm_consensus.providers.mock import MockProvider


@pytest.fixture(autouse=True)
def _keep_root_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_runner, "configure_logging", lambda as_json: None)


def _prompt_file(tmp_path: Path, text: str, name: str = "prompt.txt") -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_main_broadcast_prints_json_result(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    prompt = _prompt_file(tmp_path, "hello there")
    metrics = tmp_path / "metrics.jsonl"

    exit_code = cli_runner.main(
        [
            "--providers",
            "mock:a,mock:b",
            "--policy",
            "broadcast",
            "--input",
            str(prompt),
            "--metrics",
            str(metrics),
            "--out-format",
            "json",
        ]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "success"
    assert payload["providers"] == ["a", "b"]
    assert payload["text"] == "echo(a): hello there"
    # plain text answers: full success rate and agreement, no self-confidence
    assert payload["confidence"] == pytest.approx(0.7)

    events = [json.loads(line)["event"] for line in metrics.read_text(encoding="utf-8").splitlines()]
    assert events.count("provider_call") == 2
    assert "dispatch_metric" in events
    assert "consensus_result" in events


def test_main_fallback_prints_text_and_writes_audit(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    prompt = _prompt_file(tmp_path, "ping")
    audit = tmp_path / "audit.jsonl"

    exit_code = cli_runner.main(
        [
            "--providers",
            "mock:primary",
            "--policy",
            "fallback",
            "--session",
            "ops",
            "--input",
            str(prompt),
            "--audit",
            str(audit),
        ]
    )

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "echo(primary): ping"
    [record] = [json.loads(line) for line in audit.read_text(encoding="utf-8").splitlines()]
    assert record["session_key"] == "ops"
    assert record["result"] == "echo(primary): ping"


def test_main_reports_failure_with_exit_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    prompt = _prompt_file(tmp_path, "[ERROR] please fail")

    exit_code = cli_runner.main(
        ["--providers", "mock:a", "--policy", "fallback", "--input", str(prompt)]
    )

    assert exit_code == 1
    assert "Execution failed: all 1 providers failed" in capsys.readouterr().err


def test_main_without_providers_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prompt = _prompt_file(tmp_path, "hi")
    assert cli_runner.main(["--input", str(prompt)]) == 1
    assert "no providers configured" in capsys.readouterr().err


def test_config_file_and_flags_are_layered(tmp_path: Path) -> None:
    config_path = tmp_path / "gateway.yaml"
    config_path.write_text(
        "policy: fallback\ntime_budget_s: 9\nproviders: [mock:x]\n", encoding="utf-8"
    )
    args = parse_args(
        ["--config", str(config_path), "--input", "-", "--time-budget", "2.5", "--max-concurrency", "3"]
    )

    config = build_gateway_config(args)

    assert config.default_policy is DispatchPolicy.FALLBACK
    assert config.default_time_budget_s == 2.5
    assert config.max_concurrency == 3
    assert config.providers == ("mock:x",)


def test_prepare_execution_uses_factory_overrides(tmp_path: Path) -> None:
    prompt = _prompt_file(tmp_path, "hi")
    args = parse_args(["--providers", "openai:gpt-4o-mini", "--input", str(prompt)])
    sentinel = MockProvider("override")

    gateway, task, providers = cli_runner.prepare_execution(
        args, factories={"openai": lambda model: sentinel}
    )

    assert providers == [sentinel]
    assert task.session_key == "cli"
    assert gateway.config.providers == ("openai:gpt-4o-mini",)


def test_build_task_reads_json_input(tmp_path: Path) -> None:
    task_file = _prompt_file(
        tmp_path,
        json.dumps(
            {
                "messages": [
                    {"role": "system", "content": "sys"},
                    {"role": "user", "content": "from json"},
                ],
                "options": {"temperature": 0.4, "maxOutputSize": 50, "timeBudget": 3},
                "metadata": {"ticket": "T-1"},
            }
        ),
        name="task.json",
    )
    args = parse_args(["--input", str(task_file), "--temperature", "0.9"])

    task = build_task(args)

    assert task.prompt == "from json"
    assert task.options.temperature == 0.9
    assert task.options.max_output_size == 50
    assert task.options.time_budget_s == 3.0
    assert task.metadata["ticket"] == "T-1"


def test_build_task_rejects_non_object_json(tmp_path: Path) -> None:
    task_file = _prompt_file(tmp_path, "[1, 2]", name="task.json")
    with pytest.raises(ValueError):
        build_task(parse_args(["--input", str(task_file)]))


def test_load_env_file_does_not_override_existing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("OPENAI_API_KEY=from-file\nLLM_CONSENSUS_EXTRA=loaded\n", encoding="utf-8")
    monkeypatch.setenv("OPENAI_API_KEY", "from-shell")
    # registers the variable so teardown removes what the loader adds
    monkeypatch.setenv("LLM_CONSENSUS_EXTRA", "placeholder")
    monkeypatch.delenv("LLM_CONSENSUS_EXTRA")

    load_env_file(str(env_file))

    assert os.environ["OPENAI_API_KEY"] == "from-shell"
    assert os.environ["LLM_CONSENSUS_EXTRA"] == "loaded"


def test_load_env_file_missing_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_env_file(str(tmp_path / "absent.env"))
    load_env_file(None)


def test_json_log_formatter_emits_json() -> None:
    record = logging.LogRecord("llm_consensus.cli", logging.WARNING, __file__, 1, "hi %s", ("x",), None)
    assert json.loads(JsonLogFormatter().format(record)) == {
        "level": "warning",
        "logger": "llm_consensus.cli",
        "message": "hi x",
    }


def test_trace_events_are_written_to_stderr_alongside_metrics(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    prompt = _prompt_file(tmp_path, "hello")
    metrics = tmp_path / "metrics.jsonl"

    exit_code = cli_runner.main(
        [
            "--providers",
            "mock:a",
            "--policy",
            "fallback",
            "--input",
            str(prompt),
            "--metrics",
            str(metrics),
            "--trace-events",
        ]
    )

    assert exit_code == 0
    traced = [json.loads(line)["event"] for line in capsys.readouterr().err.splitlines()]
    written = [json.loads(line)["event"] for line in metrics.read_text(encoding="utf-8").splitlines()]
    assert traced == written == ["provider_call", "dispatch_metric"]
