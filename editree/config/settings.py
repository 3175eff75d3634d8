"""
Settings

Default configuration and the load/save helpers used by the CLI. User
values from the config file are merged over DEFAULT_CONFIG; API keys fall
back to the usual environment variables.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from editree.services.config_service import ConfigService

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "ai": {
        "provider": "openai",
        "openai": {
            "api_key": None,
            "model": "gpt-4o-mini",
            "temperature": 0.2,
            "max_tokens": 4096,
        },
        "claude": {
            "api_key": None,
            "model": "claude-3-5-sonnet-latest",
            "temperature": 0.2,
            "max_tokens": 4096,
        },
    },
    "workspace": {
        "strict_rename": False,
        "confirm_delete": True,
        "context_max_files": 20,
        "context_max_chars": 60000,
        "context_max_turns": 20,
    },
    "logging": {
        "level": "WARNING",
        "file": None,
    },
}

ENV_API_KEYS = {
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``override`` onto a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load the configuration, merged over DEFAULT_CONFIG.

    Raises:
        ValueError: If the config file is not valid JSON
    """
    service = ConfigService(config_path=Path(config_path) if config_path else None)
    config = merge_config(DEFAULT_CONFIG, service.load())

    for provider, env_var in ENV_API_KEYS.items():
        section = config["ai"].setdefault(provider, {})
        if not section.get("api_key") and os.environ.get(env_var):
            section["api_key"] = os.environ[env_var]
            logger.debug(f"Using {env_var} for provider {provider}")

    return config
