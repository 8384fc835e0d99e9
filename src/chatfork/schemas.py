"""
Persisted conversation schemas for chatfork.

Pydantic models validating the serialized form of a conversation, as
written by the JSON file store.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from chatfork.branching.conversation import Conversation
from chatfork.models.tree import MessageRole


class MessageNodeSchema(BaseModel):
    """Serialized message node."""

    id: str
    role: MessageRole
    content: str
    attachments: list[str] = Field(default_factory=list)
    created_at: int = 0
    parent_id: Optional[str] = None
    branch_index: int = Field(default=0, ge=0)
    last_active_child_id: Optional[str] = None
    model: Optional[str] = None

    class Config:
        from_attributes = True


class ConversationSchema(BaseModel):
    """Serialized conversation with its full node arena."""

    id: str
    title: str
    model: str
    created_at: datetime
    updated_at: datetime
    active_leaf_id: Optional[str] = None
    nodes: list[MessageNodeSchema] = Field(default_factory=list)

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationSchema":
        return cls.model_validate(conversation.to_dict())

    def to_conversation(self) -> Conversation:
        """Rebuild the in-memory conversation, re-indexing the node store."""
        return Conversation.from_dict(self.model_dump(mode="json"))
