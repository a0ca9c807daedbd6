"""Helpers for instantiating providers from configuration strings."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
import os

from ..provider_spi import ProviderSPI
from .anthropic import AnthropicProvider
from .gemini import GeminiProvider
from .mock import MockProvider
from .openai_compat import OpenAICompatibleProvider

__all__ = [
    "parse_provider_spec",
    "create_provider_from_spec",
    "create_providers",
    "provider_from_environment",
]


ProviderFactory = Callable[[str], ProviderSPI]


def parse_provider_spec(spec: str) -> tuple[str, str]:
    """Split ``spec`` into ``(prefix, remainder)``.

    Only the first ``":"`` acts as the separator so that model identifiers such
    as ``"gemma3n:e2b"`` remain intact.
    """

    if not isinstance(spec, str):
        raise ValueError("provider spec must be a string")

    prefix, sep, remainder = spec.partition(":")
    if not sep:
        raise ValueError(f"invalid provider spec: {spec!r}")

    prefix = prefix.strip().lower()
    remainder = remainder.strip()
    if not prefix or not remainder:
        raise ValueError(f"invalid provider spec: {spec!r}")

    return prefix, remainder


def _default_factories() -> dict[str, ProviderFactory]:
    return {
        "mock": lambda model: MockProvider(model),
        "openai": lambda model: OpenAICompatibleProvider(model),
        "deepseek": lambda model: OpenAICompatibleProvider.deepseek(model),
        "anthropic": lambda model: AnthropicProvider(model),
        "gemini": lambda model: GeminiProvider(model),
    }


def create_provider_from_spec(
    spec: str,
    *,
    factories: Mapping[str, ProviderFactory] | None = None,
) -> ProviderSPI:
    prefix, remainder = parse_provider_spec(spec)

    available = _default_factories()
    if factories:
        available.update(factories)

    try:
        factory = available[prefix]
    except KeyError as exc:
        supported = ", ".join(sorted(available))
        raise ValueError(
            f"unsupported provider prefix: {prefix}. supported: {supported}"
        ) from exc

    return factory(remainder)


def create_providers(
    specs: Iterable[str],
    *,
    factories: Mapping[str, ProviderFactory] | None = None,
) -> list[ProviderSPI]:
    providers = [create_provider_from_spec(spec, factories=factories) for spec in specs]
    names = [provider.name() for provider in providers]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"duplicate provider names: {', '.join(duplicates)}")
    return providers


_DISABLED_VALUES = {"", "none", "null", "off"}


def provider_from_environment(
    variable: str,
    *,
    default: str | None = None,
    optional: bool = False,
    factories: Mapping[str, ProviderFactory] | None = None,
) -> ProviderSPI | None:
    value = os.environ.get(variable, default)
    if value is None:
        if optional:
            return None
        raise ValueError(f"environment variable {variable} is required")

    normalized = value.strip()
    if normalized.lower() in _DISABLED_VALUES:
        if optional:
            return None
        raise ValueError(
            f"environment variable {variable} disabled without optional flag"
        )

    return create_provider_from_spec(normalized, factories=factories)
