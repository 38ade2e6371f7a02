"""
Invoice persistence: scoped reads and the versioned write path.
"""

from .base import InvoiceRepository, MUTABLE_FIELDS
from .memory import InMemoryInvoiceRepository
from .json_store import JsonFileInvoiceRepository

__all__ = [
    "InvoiceRepository",
    "MUTABLE_FIELDS",
    "InMemoryInvoiceRepository",
    "JsonFileInvoiceRepository"
]
