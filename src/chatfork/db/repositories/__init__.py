"""
Repository layer for database operations.

Provides a clean API for CRUD operations on database models.
"""

from chatfork.db.repositories.base import BaseRepository
from chatfork.db.repositories.conversation import SqlConversationRepository

__all__ = [
    "BaseRepository",
    "SqlConversationRepository",
]
