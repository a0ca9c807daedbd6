from __future__ import annotations

from .args import parse_args
from .config import build_gateway_config
from .runner import main, prepare_execution

__all__ = ["parse_args", "build_gateway_config", "prepare_execution", "main"]
