"""Provider adapters, one per supported backend."""

from __future__ import annotations

from llm_buffer.errors import UnknownProviderError
from llm_buffer.providers.anthropic import AnthropicAdapter
from llm_buffer.providers.base import AdapterState, ProviderAdapter
from llm_buffer.providers.gemini import GeminiAdapter
from llm_buffer.providers.ollama import OllamaAdapter
from llm_buffer.providers.openai import OpenAIAdapter

_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "anthropic": AnthropicAdapter,
    "openai": OpenAIAdapter,
    "gemini": GeminiAdapter,
    "ollama": OllamaAdapter,
}

PROVIDERS = tuple(_ADAPTERS)


def get_adapter(kind: str) -> ProviderAdapter:
    """Return the adapter for provider *kind*."""
    try:
        return _ADAPTERS[kind.lower()]()
    except KeyError:
        raise UnknownProviderError(kind) from None


__all__ = [
    "AdapterState",
    "AnthropicAdapter",
    "GeminiAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "PROVIDERS",
    "ProviderAdapter",
    "get_adapter",
]
