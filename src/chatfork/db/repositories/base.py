"""
Base repository with generic CRUD operations.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from chatfork.models.db import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Generic repository for a single SQLAlchemy model."""

    def __init__(self, model: Type[ModelT], session: Session):
        self.model = model
        self.session = session

    def get(self, id: Any) -> Optional[ModelT]:
        """
        Get a record by primary key.

        Args:
            id: Primary key value

        Returns:
            Model instance or None
        """
        return self.session.get(self.model, id)

    def create(self, **kwargs) -> ModelT:
        """
        Create a new record and flush it.

        Args:
            **kwargs: Model field values

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        self.session.flush()
        return instance
