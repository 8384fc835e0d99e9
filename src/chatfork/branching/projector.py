"""
Transcript projection.

Flattens the active path of a conversation into the ordered messages shown
to the user and sent to the reply generator. Pure functions of tree state.
"""

from dataclasses import dataclass, field
from typing import Optional

from chatfork.branching.conversation import Conversation
from chatfork.branching.navigator import BranchNavigator
from chatfork.models.tree import MessageNode, MessageRole


@dataclass(frozen=True)
class TranscriptEntry:
    """A role/content pair on the active path."""

    role: MessageRole
    content: str
    attachments: tuple[str, ...] = ()

    def to_chat_message(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class TranscriptMessage:
    """A message on the active path with its branch controls."""

    node_id: str
    role: MessageRole
    content: str
    branch_index: int
    branch_count: int
    attachments: tuple[str, ...] = field(default_factory=tuple)
    model: Optional[str] = None

    @property
    def has_branches(self) -> bool:
        return self.branch_count > 1


def entries_for(path: list[MessageNode]) -> list[TranscriptEntry]:
    """Convert a node path to transcript entries."""
    return [
        TranscriptEntry(
            role=node.role,
            content=node.content,
            attachments=tuple(node.attachments),
        )
        for node in path
    ]


def to_chat_messages(entries: list[TranscriptEntry]) -> list[dict]:
    """Render entries as the ``[{"role", "content"}]`` request payload."""
    return [entry.to_chat_message() for entry in entries]


class TranscriptProjector:
    """Projects the active path of a conversation."""

    def project(self, conversation: Conversation) -> list[TranscriptEntry]:
        """Return the active transcript, or an empty list for an empty tree."""
        if conversation.active_leaf_id is None:
            return []
        navigator = BranchNavigator(conversation.nodes)
        return entries_for(navigator.path_to(conversation.active_leaf_id))

    def view(self, conversation: Conversation) -> list[TranscriptMessage]:
        """Return the active transcript with per-message sibling counts."""
        if conversation.active_leaf_id is None:
            return []
        navigator = BranchNavigator(conversation.nodes)
        messages = []
        for node in navigator.path_to(conversation.active_leaf_id):
            siblings = navigator.siblings_of(node.id)
            messages.append(
                TranscriptMessage(
                    node_id=node.id,
                    role=node.role,
                    content=node.content,
                    branch_index=siblings.index,
                    branch_count=siblings.count,
                    attachments=tuple(node.attachments),
                    model=node.model,
                )
            )
        return messages
