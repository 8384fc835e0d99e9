"""In-memory conversation store."""

from chatfork.branching.conversation import Conversation
from chatfork.exceptions import (
    ConversationNotFoundError,
    PersistenceError,
    StoreIntegrityError,
)
from chatfork.storage.base import ConversationStore


class InMemoryConversationStore(ConversationStore):
    """Keeps serialized snapshots so loaded objects never alias saved ones."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}
        self.save_count = 0

    def save(self, conversation: Conversation) -> None:
        self._records[conversation.id] = conversation.to_dict()
        self.save_count += 1

    def load(self, conversation_id: str) -> Conversation:
        try:
            record = self._records[conversation_id]
        except KeyError:
            raise ConversationNotFoundError(conversation_id) from None
        try:
            return Conversation.from_dict(record)
        except StoreIntegrityError as e:
            raise PersistenceError(
                f"Stored conversation {conversation_id} is corrupt: {e}"
            ) from e

    def list_ids(self) -> list[str]:
        return list(self._records)
