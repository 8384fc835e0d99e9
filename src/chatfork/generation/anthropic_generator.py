"""Anthropic reply generator implementation."""

import logging
import time
from collections.abc import Sequence
from typing import Any, Optional

from anthropic import AsyncAnthropic

from chatfork.branching.projector import TranscriptEntry
from chatfork.generation.base import GeneratedReply, ReplyGenerator
from chatfork.models.tree import MessageRole

logger = logging.getLogger(__name__)


def image_block(ref: str) -> dict[str, Any]:
    """Build an Anthropic image content block from a URL or data URL."""
    if ref.startswith("data:") and ";base64," in ref:
        header, data = ref.split(";base64,", 1)
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": header[len("data:"):],
                "data": data,
            },
        }
    return {"type": "image", "source": {"type": "url", "url": ref}}


class AnthropicReplyGenerator(ReplyGenerator):
    """Reply generator using the Anthropic Messages API.

    System messages on the path are lifted into the ``system`` parameter
    since the Messages API accepts only user and assistant turns.
    """

    def __init__(
        self,
        api_key: str,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ):
        if not api_key:
            raise ValueError("Anthropic API key is required")

        self.client = AsyncAnthropic(api_key=api_key)
        self.max_tokens = max_tokens
        self.temperature = temperature
        logger.info("Initialized Anthropic generator")

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def build_request(
        self,
        messages: Sequence[TranscriptEntry],
        model: str,
        attachments: Optional[Sequence[str]] = None,
    ) -> dict[str, Any]:
        """Build Messages API request parameters from transcript entries."""
        system_parts = [m.content for m in messages if m.role == MessageRole.SYSTEM]
        turns: list[dict[str, Any]] = [
            {"role": m.role.value, "content": m.content}
            for m in messages
            if m.role != MessageRole.SYSTEM
        ]

        if attachments and turns and turns[-1]["role"] == MessageRole.USER.value:
            blocks: list[dict[str, Any]] = [image_block(ref) for ref in attachments]
            blocks.append({"type": "text", "text": turns[-1]["content"]})
            turns[-1] = {"role": MessageRole.USER.value, "content": blocks}

        request_params: dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": turns,
        }
        if system_parts:
            request_params["system"] = "\n\n".join(system_parts)
        return request_params

    async def generate_reply(
        self,
        messages: Sequence[TranscriptEntry],
        model: str,
        attachments: Optional[Sequence[str]] = None,
    ) -> GeneratedReply:
        start_time = time.time()

        response = await self.client.messages.create(
            **self.build_request(messages, model, attachments)
        )
        duration_ms = (time.time() - start_time) * 1000

        # Extract text content
        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        usage = response.usage
        return GeneratedReply(
            content=content,
            model=response.model or model,
            finish_reason=response.stop_reason or "unknown",
            prompt_tokens=usage.input_tokens if usage else 0,
            completion_tokens=usage.output_tokens if usage else 0,
            duration_ms=duration_ms,
            raw_response=response,
        )
