"""Conversation Manager.

Pure in-memory bookkeeping of conversation state for one modality. Never
performs I/O and never suspends; the only way back to a conversation that
is no longer in memory is rehydration from a caller-supplied history.
"""

import time
import uuid
from typing import Any, Optional

from shared.errors import ConversationNotFoundError
from shared.logging import get_logger
from shared.models import (
    ChatMessage,
    ConversationState,
    GenerationParams,
    MessageRole,
    RehydrationTurn,
    utcnow,
)
from orchestration.modalities import ModalityAdapter

logger = get_logger(__name__)


class ConversationManager:
    """
    Manages conversation state for one modality.

    Responsibilities:
    - Create, look up and clear conversations
    - Append user and assistant turns and count completed turns
    - Rebuild a lost conversation from an external turn history
    - Enforce the optional turn ceiling
    """

    def __init__(
        self,
        adapter: ModalityAdapter,
        max_turns: Optional[int] = None
    ) -> None:
        """
        Initialize conversation manager.

        Args:
            adapter: Modality-specific message construction
            max_turns: Completed-turn ceiling, or None for no ceiling
        """
        self.adapter = adapter
        self.max_turns = max_turns

        self._conversations: dict[str, ConversationState] = {}

    def _generate_id(self) -> str:
        return f"{self.adapter.id_prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"

    def _new_state(
        self,
        conversation_id: str,
        model: Optional[str],
        params: GenerationParams
    ) -> ConversationState:
        return ConversationState(
            id=conversation_id,
            modality=self.adapter.modality,
            messages=[self.adapter.build_system_message(params)],
            model=model,
            params=params,
        )

    def _require(self, conversation_id: str) -> ConversationState:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def create(
        self,
        model: Optional[str] = None,
        params: Optional[GenerationParams] = None
    ) -> ConversationState:
        """
        Create a new conversation seeded with its system message.

        Args:
            model: Model the conversation is generated with
            params: Modality-specific generation parameters

        Returns:
            New conversation state with ``turn_number`` 0
        """
        conversation = self._new_state(self._generate_id(), model, params or GenerationParams())
        self._conversations[conversation.id] = conversation

        logger.debug(
            "Conversation created",
            conversation_id=conversation.id,
            modality=self.adapter.modality.value,
            model=model
        )

        return conversation

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        return self._conversations.get(conversation_id)

    def has(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def get_or_create(
        self,
        conversation_id: Optional[str],
        model: Optional[str] = None,
        params: Optional[GenerationParams] = None
    ) -> ConversationState:
        """
        Get existing conversation or create a new one.

        An existing conversation is returned as stored; its model and
        parameters are not compared with the ones passed here.
        """
        if conversation_id:
            conversation = self._conversations.get(conversation_id)
            if conversation:
                return conversation

        return self.create(model, params)

    def add_user_message(
        self,
        conversation_id: str,
        prompt: str,
        attachments: Optional[list[str]] = None,
        reference_svg: Optional[str] = None
    ) -> ChatMessage:
        """
        Append a user turn. Does not change ``turn_number``.

        Raises:
            ConversationNotFoundError: If the conversation is unknown
        """
        conversation = self._require(conversation_id)

        message = ChatMessage(
            role=MessageRole.USER,
            content=self.adapter.build_user_content(prompt, attachments, reference_svg)
        )
        conversation.messages.append(message)
        conversation.updated_at = utcnow()

        return message

    def add_assistant_message(self, conversation_id: str, output: Any) -> ChatMessage:
        """
        Append an assistant turn and count the completed exchange.

        Raises:
            ConversationNotFoundError: If the conversation is unknown
        """
        conversation = self._require(conversation_id)

        message = self.adapter.build_assistant_message(output)
        conversation.messages.append(message)
        conversation.turn_number += 1
        self.adapter.after_assistant(conversation, output)
        conversation.updated_at = utcnow()

        return message

    def discard_pending_user_message(self, conversation_id: str) -> bool:
        """
        Drop a trailing user message that never got a reply.

        Returns:
            True if a message was removed
        """
        conversation = self._conversations.get(conversation_id)
        if not conversation or len(conversation.messages) < 2:
            return False

        if conversation.messages[-1].role != MessageRole.USER:
            return False

        conversation.messages.pop()
        logger.debug("Discarded unanswered user message", conversation_id=conversation_id)
        return True

    def rehydrate(
        self,
        conversation_id: str,
        model: Optional[str],
        params: Optional[GenerationParams],
        history: list[RehydrationTurn]
    ) -> ConversationState:
        """
        Rebuild a conversation from an externally supplied turn history.

        Each turn is replayed through the same message builders used by
        ``add_user_message``/``add_assistant_message``, so the result is
        identical to having built the conversation incrementally. Any
        conversation already stored under ``conversation_id`` is replaced.

        Args:
            conversation_id: Id to store the conversation under
            model: Model the conversation was generated with
            params: Generation parameters of the conversation
            history: Completed turns, oldest first

        Returns:
            The rebuilt conversation state
        """
        conversation = self._new_state(conversation_id, model, params or GenerationParams())

        for turn in history:
            conversation.messages.append(ChatMessage(
                role=MessageRole.USER,
                content=self.adapter.build_user_content(
                    turn.prompt, turn.attachments, turn.reference_svg
                )
            ))
            conversation.messages.append(self.adapter.build_assistant_message(turn.output))
            conversation.turn_number += 1
            self.adapter.after_assistant(conversation, turn.output)

        if conversation_id in self._conversations:
            logger.debug("Overwriting conversation on rehydration", conversation_id=conversation_id)

        self._conversations[conversation_id] = conversation

        logger.info(
            "Conversation rehydrated",
            conversation_id=conversation_id,
            modality=self.adapter.modality.value,
            turns=conversation.turn_number
        )

        return conversation

    def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        """
        Snapshot of the message array for a provider call.

        Raises:
            ConversationNotFoundError: If the conversation is unknown
        """
        return list(self._require(conversation_id).messages)

    def get_turn_count(self, conversation_id: str) -> int:
        conversation = self._conversations.get(conversation_id)
        return conversation.turn_number if conversation else 0

    def is_at_max_turns(self, conversation_id: str) -> bool:
        """True once the ceiling is reached; never true without a ceiling."""
        if self.max_turns is None:
            return False

        conversation = self._conversations.get(conversation_id)
        return conversation.turn_number >= self.max_turns if conversation else True

    def clear(self, conversation_id: str) -> None:
        """Remove a conversation. Unknown ids are ignored."""
        if self._conversations.pop(conversation_id, None) is not None:
            logger.debug("Conversation cleared", conversation_id=conversation_id)

    def clear_all(self) -> None:
        count = len(self._conversations)
        self._conversations.clear()
        logger.debug(
            "All conversations cleared",
            modality=self.adapter.modality.value,
            count=count
        )

    def list_conversations(self) -> list[dict[str, Any]]:
        """Summaries of all live conversations."""
        return [
            {
                "id": c.id,
                "modality": c.modality.value,
                "model": c.model,
                "turn_number": c.turn_number,
                "message_count": len(c.messages),
                "created_at": c.created_at.isoformat(),
                "updated_at": c.updated_at.isoformat()
            }
            for c in self._conversations.values()
        ]

    def get_stats(self) -> dict[str, Any]:
        """Get conversation manager statistics."""
        return {
            "modality": self.adapter.modality.value,
            "total_conversations": len(self._conversations),
            "max_turns": self.max_turns
        }
