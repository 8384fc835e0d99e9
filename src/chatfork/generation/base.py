"""Base protocol and types for reply generators."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional

from chatfork.branching.projector import TranscriptEntry


@dataclass
class GeneratedReply:
    """Standardized reply from a generator.

    Attributes:
        content: The assistant's reply text
        model: The model that produced the reply (may differ from requested)
        finish_reason: Why generation stopped (stop, length, etc.)
        prompt_tokens: Number of tokens in the prompt
        completion_tokens: Number of tokens in the completion
        duration_ms: Time taken for the API call in milliseconds
        raw_response: Provider-specific raw response for debugging
    """

    content: str
    model: str
    finish_reason: str = "stop"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    duration_ms: float = 0.0
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ReplyGenerator(ABC):
    """Abstract base class for assistant reply generators.

    Implementations must be safe to call again with the same prefix: the
    engine never retries on its own, but callers may.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (e.g., 'openai', 'anthropic')."""
        ...

    @abstractmethod
    async def generate_reply(
        self,
        messages: Sequence[TranscriptEntry],
        model: str,
        attachments: Optional[Sequence[str]] = None,
    ) -> GeneratedReply:
        """Generate the next assistant reply for a message prefix.

        Args:
            messages: Ordered transcript ending at the message being answered
            model: Inference backend identifier
            attachments: Image references sent with the final user message

        Returns:
            GeneratedReply with the full reply text

        Raises:
            Exception: Provider errors (network, auth, rate limit) propagate
                unchanged; the engine wraps them
        """
        ...
