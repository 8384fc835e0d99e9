"""Data models for chatfork."""

from chatfork.models.tree import MessageNode, MessageRole, new_node_id

__all__ = ["MessageNode", "MessageRole", "new_node_id"]
