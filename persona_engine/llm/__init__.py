"""LLM integration layer."""

from .base import BaseLLMClient, LLMError
from .client import create_llm_client
from .lmstudio import LMStudioLLMClient
from .ollama import OllamaLLMClient

__all__ = [
    "BaseLLMClient",
    "LLMError",
    "LMStudioLLMClient",
    "OllamaLLMClient",
    "create_llm_client",
]
