"""
Configuration Service

Service class for the JSON configuration file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("Editree.ConfigService")

DEFAULT_CONFIG_PATH = Path.home() / ".editree" / "config.json"


class ConfigService:
    """
    Service class for configuration management.

    A missing file yields an empty configuration.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file.

        A missing file is not an error: the configuration is empty.

        Raises:
            ValueError: If config file is invalid JSON or not an object
        """
        if not self.config_path.exists():
            logger.info(f"No config file at {self.config_path}; using defaults")
            return {}

        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing {self.config_path}: {e}")
            raise ValueError(
                f"Error parsing {self.config_path}: {e}\n"
                "Please ensure the config file is valid JSON."
            ) from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {self.config_path} must contain a JSON object")

        logger.info(f"Configuration loaded from {self.config_path}")
        return data
