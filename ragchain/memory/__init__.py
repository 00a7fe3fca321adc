"""Persistent, windowed conversation memory."""
from ragchain.memory.manager import ConversationManager, ChatTurn
from ragchain.memory.store import PersistentChatMemoryStore

__all__ = ["ConversationManager", "ChatTurn", "PersistentChatMemoryStore"]
