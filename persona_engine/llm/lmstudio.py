"""LM Studio LLM client implementation (OpenAI-compatible)."""

import json
import logging
from typing import Optional, AsyncIterator
from .base import BaseLLMClient, LLMError
import httpx

logger = logging.getLogger(__name__)


class LMStudioLLMClient(BaseLLMClient):
    """
    Client for interacting with LM Studio via OpenAI-compatible API.

    LM Studio loads models on first request, so no explicit model
    management is needed here.
    """

    async def health_check(self) -> bool:
        """Check if LM Studio is available."""
        try:
            response = await self.client.get(f"{self.base_url}/v1/models")
            return response.status_code == 200
        except Exception as e:
            logger.warning(f"LM Studio health check failed: {e}")
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
            "temperature": temperature if temperature is not None else self.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.max_tokens,
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

        Yields:
            Chunks of generated text

        Raises:
            LLMError: If streaming fails
        """
        payload = self._build_payload(messages, temperature, max_tokens, model)

        try:
            async with self.client.stream(
                "POST",
                f"{self.base_url}/v1/chat/completions",
                json=payload
            ) as response:
                response.raise_for_status()

                # OpenAI SSE format: "data: {json}\n\n"
                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data_str = line[6:]  # Remove "data: " prefix

                    if data_str.strip() == "[DONE]":
                        break

                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue

                    choices = data.get("choices", [])
                    if choices:
                        content = choices[0].get("delta", {}).get("content", "")
                        if content:
                            yield content

        except httpx.HTTPError as e:
            raise LLMError(f"HTTP error during LLM streaming: {e}") from e
        except Exception as e:
            raise LLMError(f"Failed to stream LLM response: {e}") from e
