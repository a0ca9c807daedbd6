from __future__ import annotations

import argparse
from collections.abc import Sequence


def _parse_csv(value: str) -> tuple[str, ...]:
    parts = tuple(entry.strip() for entry in value.split(",") if entry.strip())
    if not parts:
        raise argparse.ArgumentTypeError("expected at least one item")
    return parts


def _parse_positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:  # pragma: no cover - argparse reports error
        raise argparse.ArgumentTypeError("value must be numeric") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return parsed


def _parse_non_negative_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:  # pragma: no cover - argparse reports error
        raise argparse.ArgumentTypeError("value must be numeric") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError("value must be non-negative")
    return parsed


def _parse_positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:  # pragma: no cover - argparse reports error
        raise argparse.ArgumentTypeError("value must be an integer") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return parsed


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="llm-consensus")
    parser.add_argument("--providers", type=_parse_csv, help="prefix:model のカンマ区切り")
    parser.add_argument("--policy", choices=("broadcast", "fallback"))
    parser.add_argument("--session", default="cli", help="session key used for serialization")
    parser.add_argument("--input", required=True, help="prompt file, JSON task file or '-' for stdin")
    parser.add_argument("--time-budget", dest="time_budget", type=_parse_positive_float)
    parser.add_argument("--temperature", type=_parse_non_negative_float)
    parser.add_argument("--max-output-size", dest="max_output_size", type=_parse_positive_int)
    parser.add_argument("--max-concurrency", dest="max_concurrency", type=_parse_positive_int)
    parser.add_argument("--config", help="gateway configuration YAML")
    parser.add_argument("--env", help="指定した .env ファイルを読み込む")
    parser.add_argument("--metrics", help="JSONL file receiving structured events")
    parser.add_argument("--audit", help="JSONL file receiving audit records")
    parser.add_argument(
        "--trace-events",
        action="store_true",
        dest="trace_events",
        help="構造化イベントを stderr に JSON 行で出力",
    )
    parser.add_argument("--out-format", dest="out_format", default="text", choices=("text", "json"))
    parser.add_argument("--json-logs", action="store_true", dest="json_logs", help="ログを JSON 形式で出力")
    return parser.parse_args(argv)


__all__ = ["parse_args"]
