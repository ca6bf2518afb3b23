"""
Prompt Assembly Service

Builds the message list sent to the model for one turn:
- System instruction from the active character (or the generic persona)
- Retrieved chunks injected as an additional-context block
- Forwardable conversation history (control messages removed)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from persona_engine.models.chat import CharacterContext, ChatMessage
from persona_engine.models.conversation import MessageKind
from persona_engine.services.retrieval import RetrievalResult

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a role-playing chatbot."
ADDITIONAL_CONTEXT_HEADER = "**ADDITIONAL CONTEXT (for your reference only):**"


@dataclass
class PromptComponents:
    """Components of an assembled prompt."""
    system_prompt: str
    messages: List[Dict[str, str]] = field(default_factory=list)
    retrieval: Optional[RetrievalResult] = None


class PromptAssembler:
    """Assembles system instruction and history for LLM generation."""

    def build_system_prompt(
        self,
        character: Optional[CharacterContext],
        retrieval: Optional[RetrievalResult] = None,
    ) -> str:
        """
        System instruction for a turn.

        Args:
            character: Active character, or None for the generic persona
            retrieval: Chunks to inject (ignored without a character)
        """
        if character is None:
            return DEFAULT_SYSTEM_PROMPT

        context_block = ""
        if retrieval is not None and not retrieval.is_empty:
            context_block = f"\n\n{ADDITIONAL_CONTEXT_HEADER}\n{retrieval.format_snippets()}"

        return (
            f"You are {character.name}.\n"
            f"Respond as this character, embodying their personality: \"{character.personality}\"\n"
            f"{context_block}\n"
            f"Stay in character. Do not mention that you are an AI or roleplaying."
        )

    def forwardable_messages(self, messages: List[ChatMessage]) -> List[Dict[str, str]]:
        """
        History as the model should see it.

        Control messages are dropped, as are turns without text.
        """
        formatted = []
        for message in messages:
            if message.kind != MessageKind.CHAT:
                continue
            content = message.text
            if not content.strip():
                continue
            formatted.append({
                "role": message.role.value,
                "content": content,
            })
        return formatted

    def assemble(
        self,
        messages: List[ChatMessage],
        character: Optional[CharacterContext],
        retrieval: Optional[RetrievalResult] = None,
    ) -> PromptComponents:
        """
        Assemble prompt components from a sanitized log.

        Args:
            messages: Sanitized conversation log
            character: Active character
            retrieval: Retrieved chunks for this turn

        Returns:
            PromptComponents
        """
        components = PromptComponents(
            system_prompt=self.build_system_prompt(character, retrieval),
            messages=self.forwardable_messages(messages),
            retrieval=retrieval,
        )
        logger.debug(
            f"Assembled prompt: {len(components.messages)} messages, "
            f"{len(retrieval.chunks) if retrieval else 0} retrieved chunks"
        )
        return components

    def format_for_api(self, components: PromptComponents) -> List[Dict[str, str]]:
        """
        Format prompt components for the LLM chat API.

        Returns:
            System message followed by the history
        """
        messages = [{"role": "system", "content": components.system_prompt}]
        messages.extend(components.messages)
        return messages
