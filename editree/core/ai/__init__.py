"""
AI Provider Abstraction Layer

The text-generation collaborator behind the chat panel. One interface,
one implementation per vendor (OpenAI, Anthropic).
"""

from editree.core.ai.base import AIProviderConfig, AIResponse, BaseAIProvider, ProviderType
from editree.core.ai.openai_provider import OpenAIProvider
from editree.core.ai.anthropic_provider import AnthropicProvider
from editree.core.ai.factory import AIProviderFactory

__all__ = [
    "BaseAIProvider",
    "AIProviderConfig",
    "AIResponse",
    "ProviderType",
    "OpenAIProvider",
    "AnthropicProvider",
    "AIProviderFactory",
]
