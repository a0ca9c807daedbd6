from __future__ import annotations

import argparse
from collections.abc import Mapping, Sequence
import json
from json import JSONDecodeError
from pathlib import Path
import sys
from typing import Any

from ..provider_spi import Task, TaskOptions
from ..results import ConsensusResult


def _read_structured_payload(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except JSONDecodeError as exc:
        raise ValueError("failed to parse JSON input") from exc
    if not isinstance(data, Mapping):
        raise ValueError("JSON input must be an object")
    return dict(data)


def _read_input_text(source: str) -> tuple[str, bool]:
    if source == "-":
        text = sys.stdin.read()
        return text, text.lstrip().startswith("{")
    path = Path(source)
    text = path.read_text(encoding="utf-8")
    return text, path.suffix.lower() == ".json" or text.lstrip().startswith("{")


def _build_options(args: argparse.Namespace, raw: Mapping[str, Any] | None) -> TaskOptions:
    base = TaskOptions.from_mapping(raw)
    return TaskOptions(
        temperature=args.temperature if args.temperature is not None else base.temperature,
        max_output_size=(
            args.max_output_size if args.max_output_size is not None else base.max_output_size
        ),
        time_budget_s=base.time_budget_s,
    )


def build_task(args: argparse.Namespace) -> Task:
    """Build the task from ``--input``: plain text or a JSON object."""
    text, structured = _read_input_text(args.input)
    if not structured:
        return Task(prompt=text, session_key=args.session, options=_build_options(args, None))

    payload = _read_structured_payload(text)
    prompt_value = payload.get("prompt")
    prompt = prompt_value if isinstance(prompt_value, str) else ""
    messages_value = payload.get("messages")
    messages: tuple[Mapping[str, Any], ...] = ()
    if isinstance(messages_value, Sequence) and not isinstance(
        messages_value, str | bytes | bytearray
    ):
        messages = tuple(dict(entry) for entry in messages_value if isinstance(entry, Mapping))
    options_value = payload.get("options")
    metadata_value = payload.get("metadata")
    return Task(
        prompt=prompt,
        session_key=args.session,
        options=_build_options(args, options_value if isinstance(options_value, Mapping) else None),
        messages=messages,
        metadata=dict(metadata_value) if isinstance(metadata_value, Mapping) else {},
    )


def format_output(result: ConsensusResult | str, fmt: str) -> str:
    if isinstance(result, str):
        if fmt == "text":
            return result
        return json.dumps({"status": "success", "policy": "fallback", "text": result}, ensure_ascii=False)
    if fmt == "text":
        return result.response_text
    payload: dict[str, Any] = {
        "status": "success" if result.has_contributors else "error",
        "policy": "broadcast",
        "text": result.response_text,
        "confidence": result.confidence,
        "risk_score": result.risk_score,
        "providers": list(result.contributing_provider_ids),
        "metadata": dict(result.metadata),
    }
    return json.dumps(payload, ensure_ascii=False, default=str)


__all__ = ["build_task", "format_output"]
