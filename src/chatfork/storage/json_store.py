"""
File-based conversation store.

Each conversation is written to ``<directory>/<conversation_id>.json``.
Files are validated through ConversationSchema on load.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from chatfork.branching.conversation import Conversation
from chatfork.exceptions import (
    ConversationNotFoundError,
    PersistenceError,
    StoreIntegrityError,
)
from chatfork.schemas import ConversationSchema
from chatfork.storage.base import ConversationStore

logger = logging.getLogger(__name__)


class JsonFileConversationStore(ConversationStore):
    """Stores one JSON document per conversation."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory).expanduser()

    def _path_for(self, conversation_id: str) -> Path:
        if not conversation_id or "/" in conversation_id or "\\" in conversation_id:
            raise PersistenceError(f"Invalid conversation id: {conversation_id!r}")
        return self.directory / f"{conversation_id}.json"

    def save(self, conversation: Conversation) -> None:
        path = self._path_for(conversation.id)
        payload = ConversationSchema.from_conversation(conversation).model_dump_json(
            indent=2
        )
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Write-then-rename keeps the previous file intact on failure
            fd, tmp_name = tempfile.mkstemp(
                dir=self.directory, prefix=f".{conversation.id}.", suffix=".tmp"
            )
        except OSError as e:
            raise PersistenceError(
                f"Failed to save conversation {conversation.id} to {path}: {e}"
            ) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(
                f"Failed to save conversation {conversation.id} to {path}: {e}"
            ) from e
        logger.debug(f"Saved conversation {conversation.id} to {path}")

    def load(self, conversation_id: str) -> Conversation:
        path = self._path_for(conversation_id)
        if not path.exists():
            raise ConversationNotFoundError(conversation_id)

        try:
            schema = ConversationSchema.model_validate_json(
                path.read_text(encoding="utf-8")
            )
            return schema.to_conversation()
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e
        except (ValidationError, StoreIntegrityError) as e:
            raise PersistenceError(f"Corrupt conversation file {path}: {e}") from e

    def list_ids(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))
