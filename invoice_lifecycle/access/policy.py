"""
Access policy resolution.

The resolver is the single source of truth for what an actor may see and
change. Repositories ask it for a QueryPredicate per resource kind and
filter every read through it; the service asks it to authorize every write.
The rule table is total: each role has an outcome for each resource kind,
and anything unrecognized resolves to the empty predicate.
"""

from typing import Any, Dict, Iterable, List, Optional

from invoice_lifecycle.models import (
    Actor, Invoice, InvoicePatch, InvoiceStatus, ResourceKind, Role,
    AuthenticationError, ForbiddenError, ValidationError
)
from .roles import normalize_role

import logging
logger = logging.getLogger(__name__)


# Attribute name -> stored document field, for to_filter()
FILTER_FIELD_NAMES = {
    'id': 'id',
    'project_id': 'projectId',
    'submitted_by_user_id': 'submittedByUserId',
    'vendor_id': 'vendorId',
}

VENDOR_EDITABLE_FIELDS = frozenset({'poNumber', 'lineItems', 'notes'})
APPROVER_ROLES = frozenset({Role.ADMIN, Role.PROJECT_MANAGER})
# Roles whose members are listed by the public user directory
DIRECTORY_ROLES = frozenset({Role.PROJECT_MANAGER})


class QueryPredicate:
    """
    Filter condition restricting which records an actor may access.

    A predicate is one of: unrestricted, empty, or "attribute is one of
    values". An empty value set matches nothing; it never widens to all.
    """

    ALL = 'all'
    NONE = 'none'
    IN = 'in'

    def __init__(self, kind: ResourceKind, mode: str, attribute: Optional[str] = None,
                 values: Iterable[Any] = ()):
        self.kind = kind
        self.mode = mode
        self.attribute = attribute
        self.values = frozenset(values)
        if mode == self.IN and not self.values:
            self.mode = self.NONE

    @classmethod
    def allow_all(cls, kind: ResourceKind) -> 'QueryPredicate':
        return cls(kind, cls.ALL)

    @classmethod
    def deny_all(cls, kind: ResourceKind) -> 'QueryPredicate':
        return cls(kind, cls.NONE)

    @classmethod
    def field_in(cls, kind: ResourceKind, attribute: str, values: Iterable[Any]) -> 'QueryPredicate':
        return cls(kind, cls.IN, attribute, [v for v in values if v])

    @property
    def is_unrestricted(self) -> bool:
        return self.mode == self.ALL

    @property
    def is_empty(self) -> bool:
        return self.mode == self.NONE

    def matches(self, record: Any) -> bool:
        """Evaluate the predicate against a model object or a dict."""
        if self.mode == self.ALL:
            return True
        if self.mode == self.NONE:
            return False
        if isinstance(record, dict):
            value = record.get(FILTER_FIELD_NAMES.get(self.attribute, self.attribute))
        else:
            value = getattr(record, self.attribute, None)
        return value is not None and value in self.values

    def filter(self, records: Iterable[Any]) -> List[Any]:
        return [record for record in records if self.matches(record)]

    def to_filter(self) -> Dict[str, Any]:
        """
        Express the predicate as a document-store filter.

        The empty predicate becomes a condition no document satisfies, so a
        store that receives it returns zero rows rather than every row.
        """
        if self.mode == self.ALL:
            return {}
        if self.mode == self.NONE:
            return {'_id': {'$in': []}}
        field_name = FILTER_FIELD_NAMES.get(self.attribute, self.attribute)
        if len(self.values) == 1:
            return {field_name: next(iter(self.values))}
        return {field_name: {'$in': sorted(self.values)}}

    def __repr__(self) -> str:
        if self.mode == self.IN:
            return f"QueryPredicate({self.kind.value}, {self.attribute} in {sorted(self.values)})"
        return f"QueryPredicate({self.kind.value}, {self.mode})"


class AccessPolicyResolver:
    """
    Computes read scopes and authorizes mutations for an actor.

    Rules:
        ADMIN            everything
        FINANCE_USER     all invoices, projects and rate cards; no users
        PROJECT_MANAGER  invoices, projects and rate cards of assigned projects
        VENDOR           own invoices (submitted_by_user_id), own rate cards
        unknown role     nothing
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.AccessPolicyResolver")

    def scope_for(self, actor: Optional[Actor], kind: ResourceKind) -> QueryPredicate:
        """
        Resolve the read predicate for an actor and resource kind.

        Args:
            actor: Caller, or None when unauthenticated
            kind: Resource kind being read

        Returns:
            QueryPredicate restricting visible records
        """
        if actor is None or actor.role is None:
            return QueryPredicate.deny_all(kind)

        role = actor.role
        if role == Role.ADMIN:
            return QueryPredicate.allow_all(kind)

        if role == Role.FINANCE_USER:
            if kind == ResourceKind.USER:
                return QueryPredicate.deny_all(kind)
            return QueryPredicate.allow_all(kind)

        if role == Role.PROJECT_MANAGER:
            projects = actor.assigned_projects
            if kind == ResourceKind.INVOICE:
                return QueryPredicate.field_in(kind, 'project_id', projects)
            if kind == ResourceKind.PROJECT:
                return QueryPredicate.field_in(kind, 'id', projects)
            if kind == ResourceKind.RATE_CARD:
                return QueryPredicate.field_in(kind, 'project_id', projects)
            return QueryPredicate.deny_all(kind)

        if role == Role.VENDOR:
            if kind == ResourceKind.INVOICE:
                return QueryPredicate.field_in(kind, 'submitted_by_user_id', [actor.id])
            if kind == ResourceKind.RATE_CARD:
                return QueryPredicate.field_in(kind, 'vendor_id', [actor.vendor_id])
            return QueryPredicate.deny_all(kind)

        return QueryPredicate.deny_all(kind)

    def can_read(self, actor: Optional[Actor], kind: ResourceKind, record: Any) -> bool:
        return self.scope_for(actor, kind).matches(record)

    def directory_scope(self, requested_role: Any) -> QueryPredicate:
        """
        Resolve the predicate for the public user directory.

        The directory needs no caller: vendors pick their project manager
        while signing up. It only ever lists members of DIRECTORY_ROLES.

        Raises:
            ValidationError: If the role is missing or not listable
        """
        if requested_role is None or not str(requested_role).strip():
            raise ValidationError("role parameter is required")
        role = normalize_role(requested_role)
        if role not in DIRECTORY_ROLES:
            self.logger.warning(f"Directory lookup refused for role {requested_role!r}")
            raise ValidationError("Invalid role")
        return QueryPredicate.field_in(ResourceKind.USER, 'role', [role])

    def require_authenticated(self, actor: Optional[Actor]) -> Actor:
        """
        Raises:
            AuthenticationError: If there is no caller
        """
        if actor is None:
            raise AuthenticationError("Not authenticated")
        return actor

    def require_role(self, actor: Optional[Actor], *roles: Role) -> Actor:
        """
        Raises:
            AuthenticationError: If there is no caller
            ForbiddenError: If the caller's role is not one of `roles`
        """
        actor = self.require_authenticated(actor)
        if actor.role not in roles:
            allowed = ' or '.join(role.value for role in roles)
            raise ForbiddenError(f"Forbidden: {allowed} access required")
        return actor

    def authorize_update(self, actor: Optional[Actor], invoice: Invoice, patch: InvoicePatch):
        """
        Check that an actor may apply a patch to an invoice.

        Raises:
            AuthenticationError: If there is no caller
            ForbiddenError: If role or scope forbids the change
        """
        actor = self.require_authenticated(actor)
        if not self.can_read(actor, ResourceKind.INVOICE, invoice):
            self.logger.warning(f"Actor {actor.id} attempted to update out-of-scope invoice {invoice.id}")
            raise ForbiddenError("Forbidden: invoice is outside your scope")

        role = actor.role
        if role == Role.VENDOR:
            restricted = set(patch.fields) - VENDOR_EDITABLE_FIELDS - {'status'}
            if restricted:
                raise ForbiddenError(f"Forbidden: vendors may not edit {', '.join(sorted(restricted))}")
            if patch.status not in (None, InvoiceStatus.VERIFIED):
                raise ForbiddenError("Forbidden: vendors may only resubmit invoices for verification")
        elif role == Role.FINANCE_USER and patch.status == InvoiceStatus.APPROVED:
            raise ForbiddenError("Forbidden: approval is reserved for project managers")
        elif role == Role.PROJECT_MANAGER and patch.status == InvoiceStatus.PAID:
            raise ForbiddenError("Forbidden: payment is reserved for finance")

    def authorize_approval(self, actor: Optional[Actor], invoice: Invoice, override: bool = False):
        """
        Check that an actor may record an approval decision.

        Raises:
            AuthenticationError: If there is no caller
            ForbiddenError: If the actor is not an approver, the invoice is out
                of scope, or an override is requested by a non-admin
        """
        actor = self.require_role(actor, *sorted(APPROVER_ROLES, key=lambda r: r.value))
        if not self.can_read(actor, ResourceKind.INVOICE, invoice):
            raise ForbiddenError("Forbidden: invoice is outside your scope")
        if override and actor.role != Role.ADMIN:
            raise ForbiddenError("Forbidden: only administrators may override an approval decision")
