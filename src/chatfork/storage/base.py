"""Base protocol for conversation persistence."""

from abc import ABC, abstractmethod

from chatfork.branching.conversation import Conversation


class ConversationStore(ABC):
    """Abstract base class for conversation persistence backends.

    A save followed by a load must reproduce the node set, the
    parent/branch-index links and the active leaf exactly.
    """

    @abstractmethod
    def save(self, conversation: Conversation) -> None:
        """Persist the conversation.

        Raises:
            PersistenceError: If the backend cannot store the conversation
        """
        ...

    @abstractmethod
    def load(self, conversation_id: str) -> Conversation:
        """Load a conversation by id.

        Raises:
            ConversationNotFoundError: If no such conversation is stored
            PersistenceError: If the stored record cannot be read
        """
        ...

    @abstractmethod
    def list_ids(self) -> list[str]:
        """Return the ids of all stored conversations."""
        ...

    def exists(self, conversation_id: str) -> bool:
        return conversation_id in self.list_ids()
