"""
Service Layer

Service classes shared by the core and the CLI.
"""

from editree.services.config_service import ConfigService
from editree.services.validation_service import ValidationService

__all__ = [
    "ConfigService",
    "ValidationService",
]
