"""
Invoice Lifecycle

Tracks vendor invoices from ingestion to payment: a status state machine,
three-way matching against purchase orders and goods receipts, role-scoped
access, project-manager approvals and an append-only audit trail.

This package provides:
- Core data models and the error hierarchy
- Purchase-order connectors
- The three-way matcher with tolerance bands
- The lifecycle state machine and audit recorder
- Access policy resolution
- Invoice repositories and the orchestrating service
- Configuration management
"""

from .models import (
    # Core data models
    Invoice,
    InvoicePatch,
    LineItem,
    MatchResult,
    AuditEntry,
    PMApproval,
    Actor,
    VendorRef,
    PurchaseOrder,
    POLine,
    GoodsReceipt,
    ReceiptLine,
    RateCard,
    Project,

    # Configuration models
    APIConnectionConfig,
    ConnectionTestResult,
    MatchingSettings,

    # Enums
    InvoiceStatus,
    InvoiceCategory,
    Role,
    ApprovalStatus,
    ResourceKind,
    AuditAction,
    AuthenticationType,

    # Exceptions
    InvoiceLifecycleError,
    AuthorizationError,
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    InvalidTransitionError,
    PORequiredError,
    ApprovalLockedError,
    ConcurrentModificationError,
    MatchingDependencyError,
    PersistenceError,
    ConfigurationError
)

__version__ = "1.0.0"

__all__ = [
    # Core data models
    "Invoice",
    "InvoicePatch",
    "LineItem",
    "MatchResult",
    "AuditEntry",
    "PMApproval",
    "Actor",
    "VendorRef",
    "PurchaseOrder",
    "POLine",
    "GoodsReceipt",
    "ReceiptLine",
    "RateCard",
    "Project",

    # Configuration models
    "APIConnectionConfig",
    "ConnectionTestResult",
    "MatchingSettings",

    # Enums
    "InvoiceStatus",
    "InvoiceCategory",
    "Role",
    "ApprovalStatus",
    "ResourceKind",
    "AuditAction",
    "AuthenticationType",

    # Exceptions
    "InvoiceLifecycleError",
    "AuthorizationError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "InvalidTransitionError",
    "PORequiredError",
    "ApprovalLockedError",
    "ConcurrentModificationError",
    "MatchingDependencyError",
    "PersistenceError",
    "ConfigurationError"
]
