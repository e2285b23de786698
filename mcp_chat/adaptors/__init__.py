"""Model adaptors for mcp-chat.

One ModelAdaptor per provider wire protocol. ``get_adaptor`` picks the
variant for a provider snapshot; unknown and custom providers are treated
as OpenAI-compatible endpoints.
"""

from typing import Optional

import httpx

from mcp_chat.adaptors.anthropic import AnthropicAdaptor
from mcp_chat.adaptors.gemini import GeminiAdaptor
from mcp_chat.adaptors.openai import DeepSeekAdaptor, OllamaAdaptor, OpenAIAdaptor
from mcp_chat.config import ModelConfig, ProviderConfig, ProviderKind
from mcp_chat.model import ModelAdaptor

ADAPTORS: dict[ProviderKind, type[ModelAdaptor]] = {
    ProviderKind.OPENAI: OpenAIAdaptor,
    ProviderKind.DEEPSEEK: DeepSeekAdaptor,
    ProviderKind.ANTHROPIC: AnthropicAdaptor,
    ProviderKind.GEMINI: GeminiAdaptor,
    ProviderKind.OLLAMA: OllamaAdaptor,
    ProviderKind.CUSTOM: OpenAIAdaptor,
}


def get_adaptor(
    provider: ProviderConfig,
    model: ModelConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> ModelAdaptor:
    """Instantiate the adaptor for ``provider``.

    Raises:
        ConfigurationError: If the provider lacks an API key or base URL.
    """
    adaptor_cls = ADAPTORS.get(provider.kind, OpenAIAdaptor)
    return adaptor_cls(provider, model, client=client)


__all__ = [
    "ADAPTORS",
    "AnthropicAdaptor",
    "DeepSeekAdaptor",
    "GeminiAdaptor",
    "OllamaAdaptor",
    "OpenAIAdaptor",
    "get_adaptor",
]
