"""Ollama LLM client implementation."""

import json
import logging
from typing import Optional, AsyncIterator
from .base import BaseLLMClient, LLMError
import httpx

logger = logging.getLogger(__name__)


class OllamaLLMClient(BaseLLMClient):
    """Client for interacting with Ollama's chat API."""

    async def health_check(self) -> bool:
        """Check if Ollama is available."""
        try:
            response = await self.client.get(f"{self.base_url}/api/tags")
            return response.status_code == 200
        except Exception as e:
            logger.warning(f"Ollama health check failed: {e}")
            return False

    def _build_payload(
        self,
        messages: list,
        temperature: Optional[float],
        max_tokens: Optional[int],
        model: Optional[str],
    ) -> dict:
        return {
            "model": model if model is not None else self.model,
            "messages": messages,
            "stream": True,
            "options": {
                "temperature": temperature if temperature is not None else self.temperature,
                "num_predict": max_tokens if max_tokens is not None else self.max_tokens,
            },
        }

    async def stream_with_history(
        self,
        messages: list,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Stream a completion with full conversation history.

        Ollama streams newline-delimited JSON objects, each carrying a
        `message.content` fragment; the last one has `done: true`.

        Yields:
            Chunks of generated text

        Raises:
            LLMError: If streaming fails
        """
        payload = self._build_payload(messages, temperature, max_tokens, model)
        logger.debug(f"Ollama stream: model={payload['model']}, messages={len(messages)}")

        try:
            async with self.client.stream(
                "POST",
                f"{self.base_url}/api/chat",
                json=payload
            ) as response:
                response.raise_for_status()

                chunk_count = 0
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    if "error" in data:
                        raise LLMError(f"Ollama error: {data['error']}")

                    content = data.get("message", {}).get("content", "")
                    if content:
                        chunk_count += 1
                        yield content

                    # Warn if stream ended with no content
                    if data.get("done") and chunk_count == 0:
                        logger.warning(f"Ollama returned zero content, reason: {data.get('done_reason', 'unknown')}")

                logger.debug(f"Ollama stream completed: {chunk_count} chunks")

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMError(f"HTTP error during LLM streaming: {e}") from e
        except Exception as e:
            raise LLMError(f"Failed to stream LLM response: {e}") from e
