"""
Configuration validation.

Checks matching tolerances and the purchase-order API connection, reporting
errors, warnings and suggestions.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List
from urllib.parse import urlparse

from invoice_lifecycle.models import APIConnectionConfig, AuthenticationType, MatchingSettings

import logging
logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def add_suggestion(self, message: str):
        self.suggestions.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'suggestions': self.suggestions
        }


def validate_matching_settings(settings: MatchingSettings) -> ValidationResult:
    """
    Validate tolerance bands.

    Negative bands and percentages of 100 or more are errors; unusually wide
    bands produce warnings.
    """
    result = ValidationResult()

    for name, value in settings.to_dict().items():
        amount = Decimal(value)
        if amount < 0:
            result.add_error(f"{name} must not be negative")
        elif name.endswith('_percentage') and amount >= 100:
            result.add_error(f"{name} must be below 100")

    if settings.total_tolerance_percentage > Decimal("5"):
        result.add_warning("Total tolerance above 5% may hide billing errors")
    if settings.rate_tolerance_absolute > Decimal("1"):
        result.add_warning("Rate tolerance above 1.00 per unit is unusually wide")
    if settings.quantity_tolerance_absolute > 0 or settings.quantity_tolerance_percentage > 0:
        result.add_suggestion("Quantity tolerance is usually exact for billed hours")

    logger.debug(f"Matching settings validation completed: {len(result.errors)} errors, "
                 f"{len(result.warnings)} warnings")
    return result


def validate_connector_config(config: APIConnectionConfig) -> ValidationResult:
    """
    Validate the purchase-order API connection configuration.

    Args:
        config: API connection configuration to validate

    Returns:
        ValidationResult with validation details
    """
    result = ValidationResult()

    if not config.connection_id:
        result.add_error("Connection ID is required")
    elif not re.match(r'^[a-zA-Z0-9_-]+$', config.connection_id):
        result.add_error("Connection ID can only contain letters, numbers, hyphens, and underscores")

    if not config.base_url:
        result.add_error("Base URL is required")
    else:
        parsed_url = urlparse(config.base_url)

        if not parsed_url.scheme:
            result.add_error("Base URL must include protocol (http:// or https://)")
        elif parsed_url.scheme not in ['http', 'https']:
            result.add_error("Base URL must use HTTP or HTTPS protocol")
        elif parsed_url.scheme == 'http':
            result.add_warning("HTTP is not secure - consider using HTTPS")

        if not parsed_url.netloc:
            result.add_error("Base URL must include hostname")

    if not config.api_key:
        result.add_error("API key is required (set INVOICE_LIFECYCLE_PO_API_KEY)")
    elif config.authentication_type == AuthenticationType.API_KEY and len(config.api_key) < 16:
        result.add_warning("API key is shorter than 16 characters")

    if config.timeout <= 0:
        result.add_error("Timeout must be positive")
    elif config.timeout > 120:
        result.add_warning("Timeout is very high (>2 minutes)")

    if config.rate_limit <= 0:
        result.add_error("Rate limit must be positive")
    elif config.rate_limit > 1000:
        result.add_warning("Rate limit is very high (>1000 requests per minute)")

    logger.debug(f"Connector config validation completed: {len(result.errors)} errors, "
                 f"{len(result.warnings)} warnings")
    return result
