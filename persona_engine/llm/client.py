"""LLM client factory."""

from typing import TYPE_CHECKING
from .base import BaseLLMClient
from .lmstudio import LMStudioLLMClient
from .ollama import OllamaLLMClient

if TYPE_CHECKING:
    from persona_engine.config.models import LLMConfig


def create_llm_client(config: "LLMConfig") -> BaseLLMClient:
    """
    Factory function to create appropriate LLM client based on provider.

    Args:
        config: LLM configuration with provider type and settings

    Returns:
        Provider-specific LLM client instance

    Raises:
        ValueError: If provider is unknown
    """
    provider = config.provider.lower()

    if provider == "ollama":
        client_class = OllamaLLMClient
    elif provider == "lmstudio":
        client_class = LMStudioLLMClient
    else:
        raise ValueError(
            f"Unknown LLM provider: '{provider}'. "
            f"Supported providers: ollama, lmstudio"
        )

    return client_class(
        base_url=config.base_url,
        model=config.model,
        timeout=config.timeout_seconds,
        temperature=config.temperature,
        max_tokens=config.max_response_tokens,
        context_window=config.context_window,
    )
