"""Dispatch strategies and shared types."""
from __future__ import annotations

from .broadcast import BroadcastStrategy
from .context import AttemptFn, DispatchContext, DispatchStrategy, StrategyResult
from .fallback import FallbackStrategy

__all__ = [
    "AttemptFn",
    "BroadcastStrategy",
    "DispatchContext",
    "DispatchStrategy",
    "FallbackStrategy",
    "StrategyResult",
]
