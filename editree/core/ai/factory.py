"""
AI Provider Factory

Creates provider instances from the ``ai`` section of the configuration.
"""

import logging
from typing import Any, Dict, Optional, Type

from editree.core.ai.anthropic_provider import AnthropicProvider
from editree.core.ai.base import AIProviderConfig, BaseAIProvider, ProviderType
from editree.core.ai.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

# Configuration section name -> provider type
_CONFIG_NAMES = {
    "openai": ProviderType.OPENAI,
    "claude": ProviderType.ANTHROPIC,
    "anthropic": ProviderType.ANTHROPIC,
}

_DEFAULT_MODELS = {
    ProviderType.OPENAI: "gpt-4o-mini",
    ProviderType.ANTHROPIC: "claude-3-5-sonnet-latest",
}


class AIProviderFactory:
    """
    Factory for creating AI provider instances.

    Providers are looked up by type and built from the ``ai`` config section.
    """

    _providers: Dict[ProviderType, Type[BaseAIProvider]] = {
        ProviderType.OPENAI: OpenAIProvider,
        ProviderType.ANTHROPIC: AnthropicProvider,
    }

    @classmethod
    def create(cls, provider_type: ProviderType, config: AIProviderConfig) -> BaseAIProvider:
        """
        Create a provider instance.

        Raises:
            ValueError: If provider type is not registered
        """
        provider_class = cls._providers.get(provider_type)
        if not provider_class:
            raise ValueError(f"Provider type {provider_type.value} not registered")
        return provider_class(config)

    @classmethod
    def create_from_config(cls, ai_config: Dict[str, Any]) -> Optional[BaseAIProvider]:
        """
        Create the provider named by ``ai.provider``.

        Without an explicit choice the first section with an API key wins.

        Returns:
            Provider instance or None if no usable configuration was found
        """
        provider_name = (ai_config.get("provider") or "").lower()
        if not provider_name:
            for name in ("openai", "claude"):
                if (ai_config.get(name) or {}).get("api_key"):
                    provider_name = name
                    break
            else:
                return None

        provider_type = _CONFIG_NAMES.get(provider_name)
        if provider_type is None:
            logger.warning(f"Unknown AI provider in config: {provider_name}")
            return None

        section = ai_config.get(provider_name) or {}
        if not section.get("api_key"):
            logger.warning(f"No API key configured for provider {provider_name}")
            return None

        config = AIProviderConfig(
            provider_type=provider_type,
            api_key=section.get("api_key"),
            base_url=section.get("base_url"),
            default_model=section.get("model") or _DEFAULT_MODELS[provider_type],
            temperature=section.get("temperature", 0.2),
            max_tokens=section.get("max_tokens", 4096),
        )
        return cls.create(provider_type, config)
