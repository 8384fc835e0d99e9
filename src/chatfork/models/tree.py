"""
Conversation tree data models.

Plain dataclasses for the message nodes held by a conversation's node store.
Nodes reference their parent by id only; the store owns them.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Optional


class MessageRole(str, enum.Enum):
    """Author of a message node."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def new_node_id() -> str:
    """Generate an opaque message node identifier."""
    return uuid.uuid4().hex


@dataclass
class MessageNode:
    """One turn in the conversation tree."""

    role: MessageRole
    content: str
    parent_id: Optional[str] = None
    attachments: list[str] = field(default_factory=list)
    created_at: int = 0  # logical tick, monotonic per conversation
    branch_index: int = 0  # assigned by the store on insert
    id: str = field(default_factory=new_node_id)
    last_active_child_id: Optional[str] = None
    model: Optional[str] = None  # backend that produced an assistant reply

    def __post_init__(self) -> None:
        self.role = MessageRole(self.role)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "attachments": list(self.attachments),
            "created_at": self.created_at,
            "parent_id": self.parent_id,
            "branch_index": self.branch_index,
            "last_active_child_id": self.last_active_child_id,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MessageNode":
        return cls(
            id=data["id"],
            role=MessageRole(data["role"]),
            content=data["content"],
            attachments=list(data.get("attachments") or []),
            created_at=data.get("created_at", 0),
            parent_id=data.get("parent_id"),
            branch_index=data.get("branch_index", 0),
            last_active_child_id=data.get("last_active_child_id"),
            model=data.get("model"),
        )

    def __repr__(self) -> str:
        return (
            f"<MessageNode(id={self.id}, role={self.role.value!r}, "
            f"parent_id={self.parent_id}, branch_index={self.branch_index})>"
        )
