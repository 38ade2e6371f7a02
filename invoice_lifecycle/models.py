"""
Core data models for the invoice lifecycle engine.

This module defines the data structures shared by the state machine,
the three-way matcher, the access policy resolver and the repository:
invoices and their line items, purchase orders and goods receipts,
match results, audit entries, actors, rate cards and the exception
hierarchy used throughout the package.
"""

import copy
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


MONEY_QUANTUM = Decimal("0.01")


class InvoiceStatus(Enum):
    """Canonical set of invoice statuses."""
    SUBMITTED = "SUBMITTED"
    RECEIVED = "RECEIVED"
    DIGITIZING = "DIGITIZING"
    VALIDATION_REQUIRED = "VALIDATION_REQUIRED"
    VERIFIED = "VERIFIED"
    MATCH_DISCREPANCY = "MATCH_DISCREPANCY"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"


class Role(Enum):
    """Normalized actor roles."""
    ADMIN = "ADMIN"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    FINANCE_USER = "FINANCE_USER"
    VENDOR = "VENDOR"


class ApprovalStatus(Enum):
    """Project-manager approval states."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class InvoiceCategory(Enum):
    """Invoice categories; GOODS invoices require a PO and a goods receipt."""
    SERVICES = "SERVICES"
    GOODS = "GOODS"


class ResourceKind(Enum):
    """Resource kinds the access policy resolver scopes."""
    INVOICE = "INVOICE"
    PROJECT = "PROJECT"
    RATE_CARD = "RATE_CARD"
    USER = "USER"


class AuditAction(Enum):
    """Action tags written to the audit trail."""
    UPDATE_AND_MATCH = "UPDATE_AND_MATCH"
    STATUS_CHANGE = "STATUS_CHANGE"
    PM_APPROVAL = "PM_APPROVAL"
    APPROVAL_OVERRIDE = "APPROVAL_OVERRIDE"


class AuthenticationType(Enum):
    """Authentication methods for purchase-order API connections."""
    API_KEY = "api_key"
    BEARER_TOKEN = "bearer_token"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_decimal(value: Any) -> Decimal:
    """
    Convert a monetary or quantity value to Decimal.

    Strings may carry currency symbols and thousands separators; floats are
    converted through their string form so binary rounding noise never
    reaches a comparison.

    Raises:
        ValidationError: If the value cannot be interpreted as a number
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Not a numeric value: {value!r}")
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, str):
            result = Decimal(value.replace('$', '').replace('₹', '').replace(',', '').strip())
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Not a numeric value: {value!r}")
    # NaN and Infinity parse but cannot be compared or rounded
    if not result.is_finite():
        raise ValidationError(f"Not a finite number: {value!r}")
    return result


def _optional_text(value: Any) -> Optional[str]:
    """Scalar references arrive as numbers from some clients; keep them as text."""
    if value is None:
        return None
    if isinstance(value, (dict, list, bool)):
        raise ValidationError(f"Expected text, got {value!r}")
    return str(value)


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary value to two places, half-up."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


def _parse_date(value: Any) -> Optional[date]:
    if value is None or (isinstance(value, date) and not isinstance(value, datetime)):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_status(value: Any) -> InvoiceStatus:
    """
    Parse an invoice status, rejecting anything outside the declared enum.

    Raises:
        ValidationError: If the value is not a declared status
    """
    if isinstance(value, InvoiceStatus):
        return value
    try:
        return InvoiceStatus(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown invoice status: {value!r}")


@dataclass
class VendorRef:
    """Vendor identity carried on an invoice."""
    id: str
    name: str
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'code': self.code}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VendorRef':
        return cls(id=data['id'], name=data.get('name', ''), code=data.get('code'))


@dataclass
class LineItem:
    """
    A single billed line on an invoice.

    `quantity` holds units or hours; `po_line_ref` points at the purchase
    order line the item bills against, when the vendor supplied one.
    """
    line_id: str
    role: Optional[str]
    quantity: Decimal
    unit_rate: Decimal
    subtotal: Optional[Decimal] = None
    po_line_ref: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        """Line amount: the stated subtotal, or quantity times rate."""
        if self.subtotal is not None:
            return self.subtotal
        return quantize_money(self.quantity * self.unit_rate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lineId': self.line_id,
            'role': self.role,
            'quantity': str(self.quantity),
            'unitRate': str(self.unit_rate),
            'subtotal': str(self.subtotal) if self.subtotal is not None else None,
            'poLineRef': self.po_line_ref
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> 'LineItem':
        """Create a LineItem; `hours` is accepted as an alias for `quantity`."""
        if not isinstance(data, dict):
            raise ValidationError(f"Line item {index} must be an object")
        quantity = data.get('quantity', data.get('hours'))
        rate = data.get('unitRate', data.get('rate'))
        if quantity is None or rate is None:
            raise ValidationError(f"Line item {index} requires quantity and unitRate")
        subtotal = data.get('subtotal')
        return cls(
            line_id=str(data.get('lineId') or index + 1),
            role=_optional_text(data.get('role')),
            quantity=parse_decimal(quantity),
            unit_rate=parse_decimal(rate),
            subtotal=parse_decimal(subtotal) if subtotal is not None else None,
            po_line_ref=_optional_text(data.get('poLineRef'))
        )


@dataclass
class MatchResult:
    """
    Outcome of a three-way match.

    `reference` snapshots the purchase-order and receipt values (and the
    tolerances) the verdict was computed from, so it can be reproduced.
    """
    is_matched: bool
    discrepancies: List[str]
    matched_at: datetime
    reference: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isMatched': self.is_matched,
            'discrepancies': list(self.discrepancies),
            'matchedAt': _iso(self.matched_at),
            'reference': copy.deepcopy(self.reference)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchResult':
        return cls(
            is_matched=bool(data['isMatched']),
            discrepancies=list(data.get('discrepancies', [])),
            matched_at=_parse_datetime(data['matchedAt']),
            reference=data.get('reference', {})
        )


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of a single status change."""
    action: str
    actor: str
    actor_id: Optional[str]
    actor_role: str
    timestamp: datetime
    previous_status: str
    new_status: str
    notes: str
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'action': self.action,
            'actor': self.actor,
            'actorId': self.actor_id,
            'actorRole': self.actor_role,
            'timestamp': _iso(self.timestamp),
            'previousStatus': self.previous_status,
            'newStatus': self.new_status,
            'notes': self.notes,
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        return cls(
            action=data['action'],
            actor=data['actor'],
            actor_id=data.get('actorId'),
            actor_role=data['actorRole'],
            timestamp=_parse_datetime(data['timestamp']),
            previous_status=data['previousStatus'],
            new_status=data['newStatus'],
            notes=data.get('notes', ''),
            ip_address=data.get('ipAddress', 'unknown'),
            user_agent=data.get('userAgent', 'unknown')
        )


@dataclass
class PMApproval:
    """Project-manager approval decision attached to an invoice."""
    status: ApprovalStatus = ApprovalStatus.PENDING
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'approvedBy': self.actor_id,
            'approvedByRole': self.actor_role,
            'approvedAt': _iso(self.timestamp),
            'notes': self.notes
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PMApproval':
        if not data:
            return cls()
        return cls(
            status=ApprovalStatus(str(data.get('status') or 'PENDING').upper()),
            actor_id=data.get('approvedBy'),
            actor_role=data.get('approvedByRole'),
            timestamp=_parse_datetime(data.get('approvedAt')),
            notes=data.get('notes')
        )


@dataclass
class Invoice:
    """
    A vendor invoice tracked through the lifecycle.

    `version` is the optimistic concurrency token: the repository bumps it on
    every successful write and refuses writes made against a stale version.
    """
    id: str
    vendor: VendorRef
    submitted_by_user_id: str
    amount: Decimal
    status: InvoiceStatus = InvoiceStatus.RECEIVED
    project_id: Optional[str] = None
    currency: Optional[str] = None
    po_number: Optional[str] = None
    category: InvoiceCategory = InvoiceCategory.SERVICES
    line_items: List[LineItem] = field(default_factory=list)
    matching: Optional[MatchResult] = None
    pm_approval: PMApproval = field(default_factory=PMApproval)
    audit_trail: List[AuditEntry] = field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: int = 1

    def __post_init__(self):
        self.status = parse_status(self.status)

    @property
    def line_total(self) -> Decimal:
        return quantize_money(sum((item.amount for item in self.line_items), Decimal("0")))

    def copy(self) -> 'Invoice':
        """Deep copy; audit entries are immutable and shared safely."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'vendor': self.vendor.to_dict(),
            'vendorName': self.vendor.name,
            'submittedByUserId': self.submitted_by_user_id,
            'projectId': self.project_id,
            'amount': str(self.amount),
            'currency': self.currency,
            'poNumber': self.po_number,
            'category': self.category.value,
            'lineItems': [item.to_dict() for item in self.line_items],
            'status': self.status.value,
            'matching': self.matching.to_dict() if self.matching else None,
            'pmApproval': self.pm_approval.to_dict(),
            'auditTrail': [entry.to_dict() for entry in self.audit_trail],
            'notes': self.notes,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
            'version': self.version
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Invoice':
        """Create an Invoice from its dictionary form."""
        vendor = data.get('vendor') or {'id': data.get('vendorId', ''), 'name': data.get('vendorName', '')}
        return cls(
            id=data['id'],
            vendor=VendorRef.from_dict(vendor),
            submitted_by_user_id=data['submittedByUserId'],
            amount=parse_decimal(data.get('amount', '0')),
            status=parse_status(data.get('status', InvoiceStatus.RECEIVED.value)),
            project_id=data.get('projectId'),
            currency=data.get('currency'),
            po_number=data.get('poNumber'),
            category=InvoiceCategory(data.get('category', InvoiceCategory.SERVICES.value)),
            line_items=[LineItem.from_dict(item, i) for i, item in enumerate(data.get('lineItems') or [])],
            matching=MatchResult.from_dict(data['matching']) if data.get('matching') else None,
            pm_approval=PMApproval.from_dict(data.get('pmApproval')),
            audit_trail=[AuditEntry.from_dict(e) for e in data.get('auditTrail') or []],
            notes=data.get('notes'),
            created_at=_parse_datetime(data.get('createdAt')) or utc_now(),
            updated_at=_parse_datetime(data.get('updatedAt')) or utc_now(),
            version=int(data.get('version', 1))
        )


@dataclass
class InvoicePatch:
    """
    A validated update request against an invoice.

    `fields` records which recognized keys the client actually sent, so that
    "not supplied" and "supplied as null" stay distinguishable.
    """
    status: Optional[InvoiceStatus] = None
    po_number: Optional[str] = None
    line_items: Optional[List[LineItem]] = None
    notes: Optional[str] = None
    amount: Optional[Decimal] = None
    fields: frozenset = frozenset()

    RECOGNIZED_FIELDS = ('status', 'poNumber', 'lineItems', 'notes', 'amount')

    @classmethod
    def from_dict(cls, data: Any) -> 'InvoicePatch':
        """
        Validate a JSON patch.

        Raises:
            ValidationError: On a non-object body, unknown fields or bad values
        """
        if not isinstance(data, dict):
            raise ValidationError("Patch must be a JSON object")
        unknown = sorted(set(data) - set(cls.RECOGNIZED_FIELDS))
        if unknown:
            raise ValidationError(f"Unrecognized patch fields: {', '.join(unknown)}")

        status = parse_status(data['status']) if data.get('status') is not None else None
        po_number = data.get('poNumber')
        if po_number is not None:
            po_number = str(po_number).strip() or None

        line_items = None
        if 'lineItems' in data:
            if not isinstance(data['lineItems'], list):
                raise ValidationError("lineItems must be a list")
            line_items = [LineItem.from_dict(item, i) for i, item in enumerate(data['lineItems'])]

        amount = parse_decimal(data['amount']) if data.get('amount') is not None else None

        return cls(
            status=status,
            po_number=po_number,
            line_items=line_items,
            notes=data.get('notes'),
            amount=amount,
            fields=frozenset(data)
        )


@dataclass(frozen=True)
class Actor:
    """
    The caller performing an operation; never persisted.

    `assigned_projects` scopes a PROJECT_MANAGER, `vendor_id` scopes a VENDOR.
    A `role` of None means the stored role could not be recognized.
    """
    id: str
    name: Optional[str] = None
    role: Optional[Role] = None
    assigned_projects: Tuple[str, ...] = ()
    vendor_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_user(cls, user: Dict[str, Any]) -> 'Actor':
        """Build an actor from a stored user record, normalizing its role."""
        from invoice_lifecycle.access.roles import normalize_role
        return cls(
            id=user['id'],
            name=user.get('name') or user.get('email'),
            role=normalize_role(user.get('role')),
            assigned_projects=tuple(user.get('assignedProjects') or ()),
            vendor_id=user.get('vendorId')
        )


@dataclass
class POLine:
    """A purchase-order line: the approved quantity and rate."""
    line_ref: str
    role: Optional[str]
    quantity: Decimal
    unit_rate: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lineRef': self.line_ref,
            'role': self.role,
            'quantity': str(self.quantity),
            'unitRate': str(self.unit_rate)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'POLine':
        return cls(
            line_ref=str(data['lineRef']),
            role=_optional_text(data.get('role')),
            quantity=parse_decimal(data['quantity']),
            unit_rate=parse_decimal(data['unitRate'])
        )


@dataclass
class PurchaseOrder:
    """An approved purchase order."""
    po_number: str
    vendor_id: Optional[str]
    total: Decimal
    lines: List[POLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'poNumber': self.po_number,
            'vendorId': self.vendor_id,
            'total': str(self.total),
            'lines': [line.to_dict() for line in self.lines]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PurchaseOrder':
        return cls(
            po_number=data['poNumber'],
            vendor_id=data.get('vendorId'),
            total=parse_decimal(data['total']),
            lines=[POLine.from_dict(line) for line in data.get('lines') or []]
        )


@dataclass
class ReceiptLine:
    """Quantity confirmed as received against a purchase-order line."""
    line_ref: str
    quantity_received: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {'lineRef': self.line_ref, 'quantityReceived': str(self.quantity_received)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReceiptLine':
        return cls(line_ref=str(data['lineRef']), quantity_received=parse_decimal(data['quantityReceived']))


@dataclass
class GoodsReceipt:
    """A goods receipt recorded against a purchase order."""
    receipt_id: str
    po_number: str
    lines: List[ReceiptLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'receiptId': self.receipt_id,
            'poNumber': self.po_number,
            'lines': [line.to_dict() for line in self.lines]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GoodsReceipt':
        return cls(
            receipt_id=data['receiptId'],
            po_number=data['poNumber'],
            lines=[ReceiptLine.from_dict(line) for line in data.get('lines') or []]
        )


@dataclass
class RateEntry:
    """One rate on a rate card."""
    role: str
    experience_range: Optional[str]
    rate: Decimal
    unit: str = "hour"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'role': self.role,
            'experienceRange': self.experience_range,
            'rate': str(self.rate),
            'unit': self.unit
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RateEntry':
        return cls(
            role=data['role'],
            experience_range=data.get('experienceRange'),
            rate=parse_decimal(data['rate']),
            unit=data.get('unit', 'hour')
        )


@dataclass
class RateCard:
    """A vendor rate card, read as approval context only."""
    id: str
    vendor_id: str
    effective_from: date
    project_id: Optional[str] = None
    effective_to: Optional[date] = None
    status: str = "ACTIVE"
    rates: List[RateEntry] = field(default_factory=list)

    def is_active_on(self, day: date) -> bool:
        if self.status.upper() != "ACTIVE":
            return False
        if day < self.effective_from:
            return False
        return self.effective_to is None or day <= self.effective_to

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'vendorId': self.vendor_id,
            'projectId': self.project_id,
            'effectiveFrom': _iso(self.effective_from),
            'effectiveTo': _iso(self.effective_to),
            'status': self.status,
            'rates': [rate.to_dict() for rate in self.rates]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RateCard':
        return cls(
            id=data['id'],
            vendor_id=data['vendorId'],
            effective_from=_parse_date(data['effectiveFrom']),
            project_id=data.get('projectId'),
            effective_to=_parse_date(data.get('effectiveTo')),
            status=data.get('status', 'ACTIVE'),
            rates=[RateEntry.from_dict(rate) for rate in data.get('rates') or []]
        )


@dataclass
class Project:
    """A project invoices are billed against."""
    id: str
    name: str
    status: str = "ACTIVE"

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'status': self.status}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        return cls(id=data['id'], name=data.get('name', ''), status=data.get('status', 'ACTIVE'))


@dataclass
class User:
    """
    A stored user account.

    Only the directory reads users; authentication happens upstream and
    reaches the service as an Actor.
    """
    id: str
    name: str
    email: Optional[str] = None
    role: Optional[Role] = None
    active: bool = True

    def summary(self) -> Dict[str, Any]:
        """Public fields only."""
        return {'id': self.id, 'name': self.name}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role.value if self.role else None,
            'isActive': self.active
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        from invoice_lifecycle.access.roles import normalize_role
        return cls(
            id=data['id'],
            name=data.get('name') or '',
            email=data.get('email'),
            role=normalize_role(data.get('role')),
            active=data.get('isActive', True) is not False
        )

@dataclass
class ConnectionTestResult:
    """Result of testing a purchase-order source connection."""
    success: bool
    connection_id: str
    response_time: float
    error_message: Optional[str] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'connection_id': self.connection_id,
            'response_time': self.response_time,
            'error_message': self.error_message,
            'additional_info': self.additional_info
        }


@dataclass
class APIConnectionConfig:
    """Configuration for the purchase-order REST API."""
    connection_id: str
    base_url: str
    api_key: str
    authentication_type: AuthenticationType = AuthenticationType.API_KEY
    timeout: int = 30
    rate_limit: int = 100  # requests per minute
    additional_headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self, include_api_key: bool = False) -> Dict[str, Any]:
        """Convert to dictionary, optionally excluding the API key."""
        data = {
            'connection_id': self.connection_id,
            'base_url': self.base_url,
            'authentication_type': self.authentication_type.value,
            'timeout': self.timeout,
            'rate_limit': self.rate_limit,
            'additional_headers': self.additional_headers
        }
        if include_api_key:
            data['api_key'] = self.api_key
        return data


@dataclass
class MatchingSettings:
    """
    Tolerance bands for three-way matching.

    A comparison passes when the difference is within either the absolute
    band or the percentage band. Quantities are exact by default; rates allow
    one cent; totals allow 1.00 or 0.5%.
    """
    quantity_tolerance_absolute: Decimal = Decimal("0")
    quantity_tolerance_percentage: Decimal = Decimal("0")
    rate_tolerance_absolute: Decimal = Decimal("0.01")
    rate_tolerance_percentage: Decimal = Decimal("0")
    total_tolerance_absolute: Decimal = Decimal("1.00")
    total_tolerance_percentage: Decimal = Decimal("0.5")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'quantity_tolerance_absolute': str(self.quantity_tolerance_absolute),
            'quantity_tolerance_percentage': str(self.quantity_tolerance_percentage),
            'rate_tolerance_absolute': str(self.rate_tolerance_absolute),
            'rate_tolerance_percentage': str(self.rate_tolerance_percentage),
            'total_tolerance_absolute': str(self.total_tolerance_absolute),
            'total_tolerance_percentage': str(self.total_tolerance_percentage)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchingSettings':
        """Create MatchingSettings from dictionary; unknown keys are ignored."""
        known = cls().to_dict()
        return cls(**{key: parse_decimal(value) for key, value in data.items() if key in known})


# Exceptions for the invoice lifecycle
class InvoiceLifecycleError(Exception):
    """Base exception for invoice lifecycle operations."""
    pass


class AuthorizationError(InvoiceLifecycleError):
    """Raised when the caller may not perform an operation."""
    pass


class AuthenticationError(AuthorizationError):
    """Raised when there is no authenticated caller."""
    pass


class ForbiddenError(AuthorizationError):
    """Raised when the caller's role or scope does not permit an operation."""
    pass


class NotFoundError(InvoiceLifecycleError):
    """Raised when an invoice or document cannot be resolved."""
    pass


class ValidationError(InvoiceLifecycleError):
    """Raised when a request or record fails validation."""
    pass


class InvalidTransitionError(ValidationError):
    """Raised when a requested status change is not a legal transition."""
    pass


class PORequiredError(ValidationError):
    """Raised when a PO-mandatory invoice has no purchase-order reference."""
    pass


class ApprovalLockedError(InvoiceLifecycleError):
    """Raised when a final approval decision would change without an override."""
    pass


class ConcurrentModificationError(InvoiceLifecycleError):
    """Raised when an invoice changed between read and write."""
    pass


class MatchingDependencyError(InvoiceLifecycleError):
    """Raised when purchase-order or receipt data could not be fetched."""
    pass


class PersistenceError(InvoiceLifecycleError):
    """Raised when a write to the invoice store fails."""
    pass


class ConfigurationError(InvoiceLifecycleError):
    """Raised when configuration is invalid or missing."""
    pass
