"""
Purchase-order and goods-receipt sources for three-way matching.

This package provides:
- The BaseConnector interface the matcher reads through
- A REST API connector with API-key/bearer authentication and rate limiting
- An in-memory connector for seeding and tests
"""

from .base_connector import BaseConnector, ConnectorError
from .api_connector import APIConnector, APIResponse, RateLimiter
from .memory_connector import InMemoryConnector

__all__ = [
    "BaseConnector",
    "ConnectorError",
    "APIConnector",
    "APIResponse",
    "RateLimiter",
    "InMemoryConnector"
]
