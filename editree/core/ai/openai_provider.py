"""
OpenAI Provider Implementation
"""

import logging
from typing import Any, Dict, List

from openai import AsyncOpenAI

from editree.core.ai.base import AIProviderConfig, AIResponse, BaseAIProvider, ProviderType

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseAIProvider):
    """Chat completions; system messages are sent as they are."""

    def __init__(self, config: AIProviderConfig):
        super().__init__(config)
        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
        )
        logger.info(f"OpenAIProvider initialized with model: {self.model}")

    async def complete(self, messages: List[Dict[str, Any]]) -> AIResponse:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        logger.debug(f"OpenAI reply: {usage}")
        return AIResponse(
            content=response.choices[0].message.content or "",
            model=response.model or self.model,
            provider=ProviderType.OPENAI,
            usage=usage,
        )
