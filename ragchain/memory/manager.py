"""Windowed conversation memory.

Each turn fetches a conversation's stored history, sends it with the new user
message to the completion backend, and persists exactly the most recent
``max_messages`` messages.
"""
from dataclasses import dataclass, field
from typing import List, Dict, Any
import structlog

from ragchain import config
from ragchain.chat_models import ChatModel
from ragchain.errors import BlankInputError, ConfigurationError
from ragchain.memory.store import PersistentChatMemoryStore
from ragchain.rag.models import ChatMessage, Role, TokenUsage

logger = structlog.get_logger()


def window(messages: List[ChatMessage], max_messages: int) -> List[ChatMessage]:
    """Keep the newest max_messages messages, oldest dropped first."""
    if len(messages) <= max_messages:
        return list(messages)
    return list(messages[-max_messages:])


@dataclass
class ChatTurn:
    """Result of one conversational turn."""

    memory_id: str
    response: str
    messages: List[ChatMessage]
    token_usage: TokenUsage = field(default_factory=TokenUsage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "memory_id": self.memory_id,
            "message_count": len(self.messages),
            "token_usage": self.token_usage.to_dict(),
        }


class ConversationManager:
    """Runs conversational turns against a persistent memory window."""

    def __init__(
        self,
        store: PersistentChatMemoryStore,
        chat_model: ChatModel,
        max_messages: int = None,
    ):
        """Initialize the conversation manager.

        Args:
            store: Persistent memory store
            chat_model: Completion backend
            max_messages: Default window size (default from config)
        """
        self.store = store
        self.chat_model = chat_model
        self.max_messages = max_messages or config.MEMORY_MAX_MESSAGES

    def chat(
        self, memory_id: str, user_message: str, max_messages: int = None
    ) -> ChatTurn:
        """Run one turn of the conversation identified by memory_id.

        Args:
            memory_id: Conversation (session) key
            user_message: New user message
            max_messages: Window size for this turn (default: manager default)

        Returns:
            ChatTurn with the reply and the persisted window

        Raises:
            BlankInputError: If the message or memory id is blank
            ConfigurationError: If max_messages is not positive
            BackendFailureError: If the backend fails (nothing is persisted)
        """
        max_messages = self.max_messages if max_messages is None else max_messages
        if max_messages <= 0:
            raise ConfigurationError(
                f"max_messages must be positive, got {max_messages}"
            )
        if not memory_id or not memory_id.strip():
            raise BlankInputError("Memory id is blank")
        if not user_message or not user_message.strip():
            raise BlankInputError("Message is blank")

        history = self.store.get(memory_id)
        context = window(history + [ChatMessage(Role.USER, user_message)], max_messages)

        logger.info(
            "conversation_turn_started",
            memory_id=memory_id,
            history_count=len(history),
            context_count=len(context),
        )

        # The newest context entry is the user message itself
        completion = self.chat_model.generate(user_message, prior_messages=context[:-1])

        updated = window(
            context + [ChatMessage(Role.ASSISTANT, completion.text)], max_messages
        )
        self.store.update(memory_id, updated)

        logger.info(
            "conversation_turn_completed",
            memory_id=memory_id,
            message_count=len(updated),
            response_length=len(completion.text),
        )
        return ChatTurn(
            memory_id=memory_id,
            response=completion.text,
            messages=updated,
            token_usage=completion.token_usage,
        )

    def get_messages(self, memory_id: str) -> List[ChatMessage]:
        """Get the persisted window for a conversation."""
        return self.store.get(memory_id)

    def clear(self, memory_id: str) -> bool:
        """Delete a conversation's memory.

        Returns:
            True if deleted, False if not found
        """
        return self.store.delete(memory_id)
