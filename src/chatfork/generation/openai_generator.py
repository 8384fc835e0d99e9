"""OpenAI-compatible reply generator (OpenRouter by default)."""

import logging
import time
from collections.abc import Sequence
from typing import Any, Optional

from openai import AsyncOpenAI

from chatfork.branching.projector import TranscriptEntry
from chatfork.generation.base import GeneratedReply, ReplyGenerator
from chatfork.models.tree import MessageRole

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIReplyGenerator(ReplyGenerator):
    """Reply generator for any endpoint speaking the OpenAI chat API.

    Image attachments are sent as ``image_url`` parts on the final user
    message, which is what vision models on OpenRouter expect.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = OPENROUTER_BASE_URL,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ):
        """Initialize the generator.

        Args:
            api_key: API key for the endpoint
            base_url: Endpoint base URL (None for api.openai.com)
            max_tokens: Maximum tokens in a reply
            temperature: Sampling temperature
        """
        if not api_key:
            raise ValueError("API key is required for the OpenAI-compatible generator")

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.max_tokens = max_tokens
        self.temperature = temperature
        logger.info(f"Initialized OpenAI-compatible generator at {base_url or 'default'}")

    @property
    def provider_name(self) -> str:
        return "openai"

    def build_messages(
        self,
        messages: Sequence[TranscriptEntry],
        attachments: Optional[Sequence[str]] = None,
    ) -> list[dict[str, Any]]:
        """Convert transcript entries to chat completion messages."""
        payload: list[dict[str, Any]] = [entry.to_chat_message() for entry in messages]

        if attachments and payload and messages[-1].role == MessageRole.USER:
            parts: list[dict[str, Any]] = [
                {"type": "text", "text": messages[-1].content}
            ]
            for ref in attachments:
                parts.append({"type": "image_url", "image_url": {"url": ref}})
            payload[-1] = {"role": MessageRole.USER.value, "content": parts}

        return payload

    async def generate_reply(
        self,
        messages: Sequence[TranscriptEntry],
        model: str,
        attachments: Optional[Sequence[str]] = None,
    ) -> GeneratedReply:
        start_time = time.time()

        response = await self.client.chat.completions.create(
            model=model,
            messages=self.build_messages(messages, attachments),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        duration_ms = (time.time() - start_time) * 1000

        if not response.choices:
            raise ValueError(f"Response from {model} contained no choices")

        choice = response.choices[0]
        usage = response.usage

        return GeneratedReply(
            content=choice.message.content or "",
            model=response.model or model,
            finish_reason=choice.finish_reason or "unknown",
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            duration_ms=duration_ms,
            raw_response=response,
        )
