"""Conversation branching: node store, navigation and transcript projection.

The mutation engine lives in ``chatfork.branching.engine``; it depends on the
generation and storage layers, which themselves build on this package.
"""

from chatfork.branching.conversation import (
    DEFAULT_MODEL,
    DEFAULT_TITLE,
    Conversation,
    new_conversation,
)
from chatfork.branching.navigator import BranchNavigator, SiblingInfo
from chatfork.branching.projector import (
    TranscriptEntry,
    TranscriptMessage,
    TranscriptProjector,
    entries_for,
    to_chat_messages,
)
from chatfork.branching.store import MessageNodeStore

__all__ = [
    "DEFAULT_MODEL",
    "DEFAULT_TITLE",
    "BranchNavigator",
    "Conversation",
    "MessageNodeStore",
    "SiblingInfo",
    "TranscriptEntry",
    "TranscriptMessage",
    "TranscriptProjector",
    "entries_for",
    "new_conversation",
    "to_chat_messages",
]
