"""Base abstract class for LLM providers."""

from abc import ABC, abstractmethod
from typing import Optional, AsyncIterator
import httpx


class LLMError(Exception):
    """Base exception for LLM operations."""
    pass


class BaseLLMClient(ABC):
    """
    Abstract base class for LLM provider clients.

    Providers take the fully assembled message list (system instruction
    first, then the forwarded history) and stream content chunks.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float,
        temperature: float,
        max_tokens: int,
        context_window: int = 8192,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize LLM client.

        Args:
            base_url: Base URL for the LLM provider
            model: Default model identifier
            timeout: Request timeout in seconds
            temperature: Default sampling temperature
            max_tokens: Default maximum tokens to generate
            context_window: Model's context window size (informational)
            client: Pre-built HTTP client (tests pass one with a mock transport)
        """
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.context_window = context_window
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the LLM provider is available and responding.

        Returns:
            True if provider is healthy, False otherwise
        """
        pass

    @abstractmethod
    def stream_with_history(
        self,
        messages: list,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Stream completion tokens with conversation history.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Override default temperature
            max_tokens: Override default max tokens
            model: Override default model

        Yields:
            Content chunks as they are generated

        Raises:
            LLMError: If generation fails
        """
        pass

    async def close(self) -> None:
        """Close the HTTP client. Can be overridden if needed."""
        await self.client.aclose()
