from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from ..config import DispatchPolicy, GatewayConfig, load_gateway_config
from ..errors import ConfigError

LOGGER = logging.getLogger("llm_consensus.cli")


class JsonLogFormatter(logging.Formatter):
    """JSON 形式でログを吐き出すフォーマッタ。"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(as_json: bool) -> None:
    handler = logging.StreamHandler()
    if as_json:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)


def load_env_file(path_text: str | None) -> None:
    if not path_text:
        return
    path = Path(path_text)
    if not path.exists():
        raise ConfigError(f".env file not found: {path}")
    # 既存の環境変数は上書きしない
    load_dotenv(path, override=False)
    LOGGER.info("loaded environment from %s", path)


def build_gateway_config(args: argparse.Namespace) -> GatewayConfig:
    """Layer command-line flags over the optional YAML configuration."""
    config = load_gateway_config(args.config) if args.config else GatewayConfig()
    overrides: dict[str, object] = {}
    if args.policy:
        overrides["default_policy"] = DispatchPolicy.coerce(args.policy)
    if args.time_budget is not None:
        overrides["default_time_budget_s"] = args.time_budget
    if args.max_concurrency is not None:
        overrides["max_concurrency"] = args.max_concurrency
    if args.providers:
        overrides["providers"] = tuple(args.providers)
    if args.metrics:
        overrides["metrics_path"] = args.metrics
    if args.audit:
        overrides["audit_path"] = args.audit
    if overrides:
        config = replace(config, **overrides)
    if not config.providers:
        raise ConfigError("no providers configured; pass --providers or set 'providers' in --config")
    return config


__all__ = ["build_gateway_config", "configure_logging", "load_env_file", "JsonLogFormatter"]
