"""Lifecycle of a single streamed model call."""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "I apologize, but I encountered an error. Please try again."


class StreamState(str, enum.Enum):
    """States of a streamed generation."""
    IDLE = "idle"
    AWAITING_MODEL_RESPONSE = "awaiting_model_response"
    STREAMING_TOKENS = "streaming_tokens"
    COMPLETED = "completed"
    ERRORED = "errored"


_TRANSITIONS = {
    StreamState.IDLE: {StreamState.AWAITING_MODEL_RESPONSE},
    StreamState.AWAITING_MODEL_RESPONSE: {
        StreamState.STREAMING_TOKENS,
        StreamState.COMPLETED,
        StreamState.ERRORED,
    },
    StreamState.STREAMING_TOKENS: {StreamState.COMPLETED, StreamState.ERRORED},
    StreamState.COMPLETED: set(),
    StreamState.ERRORED: set(),
}


@dataclass
class StreamOutcome:
    """How a generation ended."""
    state: StreamState
    content: str
    cancelled: bool = False
    error: Optional[str] = None


class StreamGenerator:
    """
    Streams one model reply and tracks its state.

    idle -> awaiting_model_response -> streaming_tokens -> completed | errored

    Errors from the model are caught here and end the stream in `errored`;
    the caller decides what to tell the user. Setting the abort event stops
    forwarding tokens and ends the stream in `completed` with
    `cancelled=True`.
    """

    def __init__(self, llm_client, abort_event: Optional[asyncio.Event] = None):
        self.llm_client = llm_client
        self.abort_event = abort_event
        self.state = StreamState.IDLE
        self.cancelled = False
        self.error: Optional[str] = None
        self._parts: List[str] = []

    def _transition(self, new_state: StreamState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid stream transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Stream state: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _aborted(self) -> bool:
        return self.abort_event is not None and self.abort_event.is_set()

    @property
    def content(self) -> str:
        """Everything streamed so far."""
        return "".join(self._parts)

    async def stream(self, messages: list, **llm_kwargs) -> AsyncIterator[str]:
        """
        Call the model and yield content chunks as they arrive.

        Args:
            messages: Full message list (system instruction first)
            **llm_kwargs: temperature / max_tokens / model overrides

        Yields:
            Content chunks
        """
        self._transition(StreamState.AWAITING_MODEL_RESPONSE)
        chunks = self.llm_client.stream_with_history(messages=messages, **llm_kwargs)
        try:
            async for chunk in chunks:
                if self._aborted():
                    self.cancelled = True
                    logger.info(f"Stream cancelled after {len(self._parts)} chunks")
                    break
                if self.state == StreamState.AWAITING_MODEL_RESPONSE:
                    self._transition(StreamState.STREAMING_TOKENS)
                self._parts.append(chunk)
                yield chunk
        except Exception as e:
            self.error = str(e) or e.__class__.__name__
            logger.error(f"Model stream failed in state {self.state.value}: {self.error}")
            self._transition(StreamState.ERRORED)
            return
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        self._transition(StreamState.COMPLETED)

    def outcome(self) -> StreamOutcome:
        return StreamOutcome(
            state=self.state,
            content=self.content,
            cancelled=self.cancelled,
            error=self.error,
        )
