from .anthropic import AnthropicProvider
from .base import BaseProvider
from .factory import (
    create_provider_from_spec,
    create_providers,
    parse_provider_spec,
    provider_from_environment,
)
from .gemini import GeminiProvider
from .mock import MockProvider
from .openai_compat import OpenAICompatibleProvider

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GeminiProvider",
    "MockProvider",
    "OpenAICompatibleProvider",
    "create_provider_from_spec",
    "create_providers",
    "parse_provider_spec",
    "provider_from_environment",
]
