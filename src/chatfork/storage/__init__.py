"""Conversation persistence backends."""

from chatfork.storage.base import ConversationStore
from chatfork.storage.json_store import JsonFileConversationStore
from chatfork.storage.memory import InMemoryConversationStore

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "JsonFileConversationStore",
]
