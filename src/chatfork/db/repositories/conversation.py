"""
Conversation repository.

SQL persistence for branching conversations. Saving is append-only for
nodes: new nodes are inserted and existing ones only have their
``last_active_child_id`` refreshed.
"""

import logging
from datetime import UTC, datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatfork.branching.conversation import Conversation
from chatfork.branching.store import MessageNodeStore
from chatfork.db.repositories.base import BaseRepository
from chatfork.exceptions import (
    ConversationNotFoundError,
    PersistenceError,
    StoreIntegrityError,
)
from chatfork.models.db import ConversationRecord, MessageNodeRecord
from chatfork.models.tree import MessageNode, MessageRole
from chatfork.storage.base import ConversationStore

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on DateTime(timezone=True) columns
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _node_from_record(record: MessageNodeRecord) -> MessageNode:
    return MessageNode(
        id=record.id,
        role=MessageRole(record.role),
        content=record.content,
        attachments=list(record.attachments or []),
        created_at=record.created_at,
        parent_id=record.parent_id,
        branch_index=record.branch_index,
        last_active_child_id=record.last_active_child_id,
        model=record.model,
    )


class SqlConversationRepository(BaseRepository[ConversationRecord], ConversationStore):
    """Repository for ConversationRecord, usable as a ConversationStore."""

    def __init__(self, session: Session):
        super().__init__(ConversationRecord, session)

    def save(self, conversation: Conversation) -> None:
        """
        Upsert the conversation row and insert any nodes not yet stored.

        Commits the session so committed turns survive a later failure in
        the same unit of work.

        Raises:
            PersistenceError: On any database error (the session is rolled back)
        """
        try:
            self._save(conversation)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(
                f"Failed to save conversation {conversation.id}: {e}"
            ) from e

    def _save(self, conversation: Conversation) -> None:
        record = self.get(conversation.id)
        if record is None:
            record = self.create(
                id=conversation.id,
                title=conversation.title,
                model=conversation.model,
                active_leaf_id=conversation.active_leaf_id,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
            )
        else:
            record.title = conversation.title
            record.model = conversation.model
            record.active_leaf_id = conversation.active_leaf_id
            record.updated_at = conversation.updated_at

        stored = {
            node.id: node
            for node in self.session.scalars(
                select(MessageNodeRecord).where(
                    MessageNodeRecord.conversation_id == conversation.id
                )
            )
        }

        inserted = 0
        for node in conversation.nodes.values():
            existing = stored.get(node.id)
            if existing is None:
                self.session.add(
                    MessageNodeRecord(
                        conversation_id=conversation.id,
                        id=node.id,
                        parent_id=node.parent_id,
                        branch_index=node.branch_index,
                        role=node.role.value,
                        content=node.content,
                        attachments=list(node.attachments),
                        created_at=node.created_at,
                        model=node.model,
                        last_active_child_id=node.last_active_child_id,
                    )
                )
                inserted += 1
            elif existing.last_active_child_id != node.last_active_child_id:
                existing.last_active_child_id = node.last_active_child_id

        self.session.flush()
        logger.debug(
            f"Saved conversation {conversation.id} ({inserted} new node(s))"
        )

    def load(self, conversation_id: str) -> Conversation:
        """
        Load a conversation and rebuild its node store.

        Raises:
            ConversationNotFoundError: If no row exists
            PersistenceError: On database errors or a structurally invalid tree
        """
        try:
            record = self.get(conversation_id)
            if record is None:
                raise ConversationNotFoundError(conversation_id)
            node_records = self.session.scalars(
                select(MessageNodeRecord).where(
                    MessageNodeRecord.conversation_id == conversation_id
                )
            ).all()
            conversation = Conversation(
                id=record.id,
                title=record.title,
                model=record.model,
                created_at=_as_utc(record.created_at),
                updated_at=_as_utc(record.updated_at),
                nodes=MessageNodeStore.from_nodes(
                    _node_from_record(r) for r in node_records
                ),
                active_leaf_id=record.active_leaf_id,
            )
            conversation.check_active_leaf()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to load conversation {conversation_id}: {e}"
            ) from e
        except StoreIntegrityError as e:
            raise PersistenceError(
                f"Stored conversation {conversation_id} is corrupt: {e}"
            ) from e

        return conversation

    def list_ids(self) -> List[str]:
        """Return conversation ids, most recently updated first."""
        return list(
            self.session.scalars(
                select(ConversationRecord.id).order_by(
                    ConversationRecord.updated_at.desc()
                )
            )
        )
