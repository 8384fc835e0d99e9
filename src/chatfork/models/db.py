"""
SQLAlchemy database models for chatfork.

Conversations and their message nodes. Nodes are stored as an arena keyed by
(conversation_id, id); tree links are plain id columns, not relationships.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ConversationRecord(Base):
    """Conversation row: metadata plus the active leaf pointer."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    active_leaf_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    # Relationships
    nodes: Mapped[list["MessageNodeRecord"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="MessageNodeRecord.created_at",
    )

    def __repr__(self) -> str:
        return f"<ConversationRecord(id={self.id}, title={self.title!r})>"


class MessageNodeRecord(Base):
    """One message node of a conversation tree."""

    __tablename__ = "message_nodes"

    conversation_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    parent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    branch_index: Mapped[int] = mapped_column(Integer, nullable=False)

    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)  # logical tick
    model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Navigation bookkeeping, the only column updated after insert
    last_active_child_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )

    conversation: Mapped["ConversationRecord"] = relationship(back_populates="nodes")

    __table_args__ = (
        Index("ix_message_nodes_parent", "conversation_id", "parent_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<MessageNodeRecord(id={self.id}, role={self.role!r}, "
            f"parent_id={self.parent_id}, branch_index={self.branch_index})>"
        )
