"""
Debug logging of model calls.
Writes each prompt, reply and retrieval summary to a per-conversation JSONL file.
"""
import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class DebugLogger:
    """Logs model calls to conversation-specific files."""

    def __init__(self, debug_dir: Optional[Path] = None, enabled: bool = False):
        """Initialize debug logger.

        Args:
            debug_dir: Directory for debug logs. Defaults to data/debug_logs/conversations/
            enabled: Whether debug logging is enabled (system config `debug`)
        """
        self.debug_dir = Path(debug_dir) if debug_dir is not None else Path("data/debug_logs/conversations")
        self.enabled = enabled

        if self.enabled:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Debug logger initialized: {self.debug_dir}")

    def log_llm_interaction(
        self,
        conversation_id: str,
        interaction_type: str,
        model: str,
        messages: List[Dict[str, str]],
        response: Optional[str] = None,
        retrieved_chunk_ids: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None
    ) -> None:
        """Append one model call to the conversation's log.

        Args:
            conversation_id: ID of conversation
            interaction_type: e.g. "chat_stream"
            model: Model name used
            messages: Full message list sent to the model
            response: Generated text (partial if the stream was cut short)
            retrieved_chunk_ids: Chunks injected into the system prompt
            metadata: Extra context (character_id, cancelled, ...)
            error: Error message if the call failed
        """
        if not self.enabled:
            return

        try:
            conversation_dir = self.debug_dir / conversation_id
            conversation_dir.mkdir(parents=True, exist_ok=True)
            log_file = conversation_dir / "conversation.jsonl"

            interaction = {
                "timestamp": datetime.now().isoformat(),
                "type": interaction_type,
                "model": model,
                "messages": messages,
                "response": response,
                "retrieved_chunk_ids": retrieved_chunk_ids or [],
                "metadata": metadata or {},
                "error": error
            }

            with open(log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(interaction, ensure_ascii=False) + "\n")

            logger.debug(
                f"[DEBUG LOG] {interaction_type} | model={model} | "
                f"conversation={conversation_id} | messages={len(messages)}"
            )

        except Exception as e:
            # Debug logging must never break a turn
            logger.error(f"Failed to write debug log: {e}", exc_info=True)

    def get_conversation_log(self, conversation_id: str) -> List[Dict[str, Any]]:
        """Read all logged interactions for a conversation."""
        log_file = self.debug_dir / conversation_id / "conversation.jsonl"
        if not log_file.exists():
            return []

        interactions = []
        with open(log_file, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    interactions.append(json.loads(line))
        return interactions

    def clear_conversation_log(self, conversation_id: str) -> None:
        """Delete the debug log directory for a conversation."""
        conversation_dir = self.debug_dir / conversation_id
        if conversation_dir.exists():
            shutil.rmtree(conversation_dir)
            logger.info(f"Cleared debug logs for conversation {conversation_id}")


# Global debug logger instance
_debug_logger: Optional[DebugLogger] = None


def initialize_debug_logger(enabled: bool = False, debug_dir: Optional[Path] = None) -> DebugLogger:
    """Initialize global debug logger with enabled flag."""
    global _debug_logger
    _debug_logger = DebugLogger(debug_dir=debug_dir, enabled=enabled)
    return _debug_logger


def get_debug_logger() -> DebugLogger:
    """Get global debug logger instance (disabled until initialized)."""
    global _debug_logger
    if _debug_logger is None:
        _debug_logger = DebugLogger()
    return _debug_logger


def log_llm_call(
    conversation_id: str,
    interaction_type: str,
    model: str,
    messages: List[Dict[str, str]],
    response: Optional[str] = None,
    **kwargs
) -> None:
    """Convenience function to log a model call."""
    get_debug_logger().log_llm_interaction(
        conversation_id=conversation_id,
        interaction_type=interaction_type,
        model=model,
        messages=messages,
        response=response,
        **kwargs
    )
