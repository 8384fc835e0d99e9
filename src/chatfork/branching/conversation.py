"""
Conversation record.

A conversation owns one MessageNodeStore and a pointer to the active leaf.
This is the shape handed to and received from the persistence layer.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Optional

from chatfork.branching.store import MessageNodeStore
from chatfork.exceptions import InvalidActiveLeafError
from chatfork.models.tree import MessageNode, MessageRole

DEFAULT_TITLE = "New Chat"
DEFAULT_MODEL = "amazon/nova-2-lite-v1:free"
TITLE_MAX_LENGTH = 50

_WHITESPACE = re.compile(r"\s+")


@dataclass
class Conversation:
    """A branching conversation."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str = DEFAULT_TITLE
    model: str = DEFAULT_MODEL
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    nodes: MessageNodeStore = field(default_factory=MessageNodeStore)
    active_leaf_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return len(self.nodes) == 0

    def add_node(self, node: MessageNode) -> MessageNode:
        """
        Insert a node into the store, stamping its logical timestamp.

        Advances ``updated_at``. Does not move the active leaf.
        """
        node.created_at = self.nodes.next_tick()
        self.nodes.insert(node)
        self.touch()
        return node

    def touch(self) -> None:
        """Advance ``updated_at``, strictly, even within one clock tick."""
        now = datetime.now(UTC)
        if now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now

    def derive_title(self, text: str) -> None:
        """Name an untitled conversation after its first user message."""
        if self.title != DEFAULT_TITLE:
            return
        collapsed = _WHITESPACE.sub(" ", text).strip()
        if not collapsed:
            return
        if len(collapsed) > TITLE_MAX_LENGTH:
            collapsed = collapsed[:TITLE_MAX_LENGTH].rstrip() + "..."
        self.title = collapsed

    def check_active_leaf(self) -> None:
        """
        Verify the active leaf names a stored node.

        Only an empty conversation may have no active leaf.

        Raises:
            InvalidActiveLeafError: If the pointer is dangling or missing
        """
        if self.active_leaf_id is None:
            if self.is_empty:
                return
        elif self.active_leaf_id in self.nodes:
            return
        raise InvalidActiveLeafError(self.id, self.active_leaf_id)

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "model": self.model,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "active_leaf_id": self.active_leaf_id,
            "nodes": [node.to_dict() for node in self.nodes.values()],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Conversation":
        """
        Rebuild a conversation from ``to_dict`` output.

        Raises:
            StoreIntegrityError: If the nodes or the active leaf are inconsistent
        """
        conversation = cls(
            id=data["id"],
            title=data.get("title", DEFAULT_TITLE),
            model=data.get("model", DEFAULT_MODEL),
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
            active_leaf_id=data.get("active_leaf_id"),
            nodes=MessageNodeStore.from_nodes(
                MessageNode.from_dict(raw) for raw in data.get("nodes", [])
            ),
        )
        conversation.check_active_leaf()
        return conversation

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id}, title={self.title!r}, "
            f"nodes={len(self.nodes)}, active_leaf_id={self.active_leaf_id})>"
        )


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def new_conversation(
    title: Optional[str] = None,
    model: Optional[str] = None,
    system_prompt: Optional[str] = None,
) -> Conversation:
    """
    Create an empty conversation, optionally rooted at a system message.

    Args:
        title: Conversation title (defaults to "New Chat")
        model: Inference backend identifier
        system_prompt: Optional system message used as the tree root

    Returns:
        New Conversation
    """
    conversation = Conversation(
        title=title or DEFAULT_TITLE,
        model=model or DEFAULT_MODEL,
    )
    if system_prompt:
        root = conversation.add_node(
            MessageNode(role=MessageRole.SYSTEM, content=system_prompt)
        )
        conversation.active_leaf_id = root.id
    return conversation
