"""Reply generator implementations.

The branching engine asks a ReplyGenerator for the next assistant reply.
Currently supported providers:
- OpenAI-compatible endpoints (OpenRouter by default, or api.openai.com)
- Anthropic

Usage:
    from chatfork.generation import create_generator

    generator = create_generator(provider_type="openai", api_key="sk-or-xxx")
    reply = await generator.generate_reply(entries, model="qwen/qwen3-4b:free")
"""

import logging
from typing import Literal, Optional

from chatfork.generation.base import GeneratedReply, ReplyGenerator

logger = logging.getLogger(__name__)

# Type alias for provider names
ProviderType = Literal["openai", "anthropic"]


def create_generator(
    provider_type: ProviderType,
    api_key: str,
    base_url: Optional[str] = None,
    max_tokens: int = 2000,
    temperature: float = 0.7,
) -> ReplyGenerator:
    """Factory function to create reply generators.

    Args:
        provider_type: The provider to use ("openai" or "anthropic")
        api_key: API key for the provider
        base_url: Endpoint override for OpenAI-compatible providers
        max_tokens: Maximum tokens per reply
        temperature: Sampling temperature

    Returns:
        Configured ReplyGenerator instance

    Raises:
        ValueError: If provider_type is unknown or api_key is missing
    """
    if not api_key:
        raise ValueError(f"API key is required for {provider_type} provider")

    if provider_type == "openai":
        from chatfork.generation.openai_generator import (
            OPENROUTER_BASE_URL,
            OpenAIReplyGenerator,
        )

        return OpenAIReplyGenerator(
            api_key=api_key,
            base_url=base_url or OPENROUTER_BASE_URL,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    elif provider_type == "anthropic":
        from chatfork.generation.anthropic_generator import AnthropicReplyGenerator

        return AnthropicReplyGenerator(
            api_key=api_key,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    else:
        raise ValueError(
            f"Unknown provider type: {provider_type}. "
            f"Supported providers: openai, anthropic"
        )


def get_available_generators() -> list[str]:
    """Get list of available provider types."""
    return ["openai", "anthropic"]


__all__ = [
    "GeneratedReply",
    "ProviderType",
    "ReplyGenerator",
    "create_generator",
    "get_available_generators",
]
