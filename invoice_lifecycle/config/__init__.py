"""
Configuration management for the invoice lifecycle service.
"""

from .config_manager import ConfigManager, get_config_manager, TOLERANCE_ENV_OVERRIDES
from .validation import ValidationResult, validate_matching_settings, validate_connector_config

__all__ = [
    "ConfigManager",
    "get_config_manager",
    "TOLERANCE_ENV_OVERRIDES",
    "ValidationResult",
    "validate_matching_settings",
    "validate_connector_config"
]
