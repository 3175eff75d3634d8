"""
Base AI Provider Interface

The workspace core treats a provider as an opaque request/response function:
chat messages in, text out. Model and sampling settings come from the
provider's configuration.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderType(Enum):
    """Supported AI provider types."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class AIProviderConfig:
    """Configuration for an AI provider."""
    provider_type: ProviderType
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    default_model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 4096
    timeout: int = 60


@dataclass
class AIResponse:
    content: str
    model: str
    provider: ProviderType
    usage: Optional[Dict[str, int]] = None


class BaseAIProvider(ABC):
    """
    Abstract base class for the text-generation providers.

    Messages use the chat format ``{"role": ..., "content": ...}`` with
    roles ``system``, ``user`` and ``assistant``.
    """

    def __init__(self, config: AIProviderConfig):
        self.config = config
        self.provider_type = config.provider_type
        if not config.api_key:
            raise ValueError(f"API key required for {self.provider_type.value}")

    @property
    def model(self) -> str:
        return self.config.default_model

    @abstractmethod
    async def complete(self, messages: List[Dict[str, Any]]) -> AIResponse:
        """
        Send ``messages`` and wait for the whole reply.

        Raises:
            Whatever the vendor SDK raises; callers wrap it.
        """
