"""Normalized exception hierarchy for the consensus core."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConsensusError(Exception):
    """Base class for errors raised by the consensus core."""


class ProviderFailureError(ConsensusError):
    """Base class for failures of a single provider call."""


class UnavailableReason(str, Enum):
    """Enumerates structured unavailability reasons."""

    UNKNOWN = "unknown"
    MISSING_OPENAI_API_KEY = "missing_openai_api_key"
    MISSING_DEEPSEEK_API_KEY = "missing_deepseek_api_key"
    MISSING_ANTHROPIC_API_KEY = "missing_anthropic_api_key"
    MISSING_GEMINI_API_KEY = "missing_gemini_api_key"
    MISSING_API_KEY = "missing_api_key"


class ProviderUnavailable(ProviderFailureError):
    """Raised before calling a provider that has no credentials or capability."""

    def __init__(
        self,
        message: str,
        *,
        reason: UnavailableReason | str | None = None,
    ) -> None:
        super().__init__(message)
        self._message = message
        if reason is None:
            self.reason: UnavailableReason | None = None
        elif isinstance(reason, UnavailableReason):
            self.reason = reason
        else:
            try:
                self.reason = UnavailableReason(reason)
            except ValueError:
                self.reason = UnavailableReason.UNKNOWN

    def __str__(self) -> str:
        return self._message


class ProviderTimeout(ProviderFailureError):
    """Raised when a provider call exceeds its time budget."""


class ProviderError(ProviderFailureError):
    """Raised when a provider call completed but signaled failure."""


class ConfigError(ConsensusError):
    """Raised when gateway or provider configuration is invalid."""


class NoSuccessfulProvider(ConsensusError):
    """Marker for a broadcast without successes.

    Fusion degrades to a zero-confidence result instead of raising this; it is
    exported so callers that insist on a successful answer can raise it from
    :attr:`ConsensusResult.has_contributors`.
    """


@dataclass(slots=True, init=False)
class AllProvidersFailed(ConsensusError):
    """Raised by the fallback policy when every provider failed."""

    message: str
    failures: list[Any]

    def __init__(
        self,
        message: str,
        *,
        failures: Iterable[Any] | None = None,
    ) -> None:
        Exception.__init__(self, message)
        self.message = message
        self.failures = list(failures) if failures is not None else []

    def __str__(self) -> str:
        return self.message


__all__ = [
    "ConsensusError",
    "ProviderFailureError",
    "UnavailableReason",
    "ProviderUnavailable",
    "ProviderTimeout",
    "ProviderError",
    "ConfigError",
    "NoSuccessfulProvider",
    "AllProvidersFailed",
]
