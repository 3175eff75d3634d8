"""
Anthropic Provider Implementation

Claude expects the system prompt outside the message list, so system
messages are pulled out and joined before each request.
"""

import logging
from typing import Any, Dict, List, Tuple

from anthropic import AsyncAnthropic

from editree.core.ai.base import AIProviderConfig, AIResponse, BaseAIProvider, ProviderType

logger = logging.getLogger(__name__)


def split_system(messages: List[Dict[str, Any]]) -> Tuple[str, List[Dict[str, Any]]]:
    """Separate system messages from the user/assistant turns."""
    system_parts = []
    turns = []
    for message in messages:
        if message.get("role") == "system":
            system_parts.append(message.get("content") or "")
        else:
            turns.append({"role": message["role"], "content": message.get("content") or ""})
    if not turns:
        turns = [{"role": "user", "content": ""}]
    return "\n\n".join(system_parts), turns


class AnthropicProvider(BaseAIProvider):
    """Anthropic messages API provider."""

    def __init__(self, config: AIProviderConfig):
        super().__init__(config)
        self.client = AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
        )
        logger.info(f"AnthropicProvider initialized with model: {self.model}")

    async def complete(self, messages: List[Dict[str, Any]]) -> AIResponse:
        system, turns = split_system(messages)
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": turns,
        }
        if system:
            request["system"] = system

        response = await self.client.messages.create(**request)
        text = "".join(
            block.text
            for block in response.content or []
            if getattr(block, "type", None) == "text"
        )
        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }
        logger.debug(f"Anthropic reply: {usage}")
        return AIResponse(
            content=text,
            model=response.model or self.model,
            provider=ProviderType.ANTHROPIC,
            usage=usage,
        )
