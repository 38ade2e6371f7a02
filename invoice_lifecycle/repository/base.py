"""
Invoice repository interface.

The repository is the persistence boundary: every read is filtered through
the access policy, and save_invoice() is the only write path. A save applies
the field changes, appends the audit entry and bumps the version in one
critical section, so a status change and its audit entry are either both
stored or neither is.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from invoice_lifecycle.access import AccessPolicyResolver
from invoice_lifecycle.models import (
    Actor, AuditEntry, Invoice, Project, RateCard, ResourceKind, User, utc_now,
    ConcurrentModificationError, NotFoundError, PersistenceError, ValidationError
)

import logging
logger = logging.getLogger(__name__)


# Invoice attributes save_invoice() may change
MUTABLE_FIELDS = frozenset({
    'status', 'po_number', 'line_items', 'notes', 'amount', 'matching', 'pm_approval'
})


class InvoiceRepository(ABC):
    """
    Base class for invoice stores.

    Subclasses implement the storage hooks; locking, scoping, versioning and
    error translation live here. Reads with actor=None are internal system
    reads and are not scoped.
    """

    def __init__(self, policy: Optional[AccessPolicyResolver] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.policy = policy or AccessPolicyResolver()
        self.clock = clock
        self._lock = threading.RLock()
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    # Storage hooks, always called with the lock held

    @abstractmethod
    def _read_invoice(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    def _read_all_invoices(self) -> List[Invoice]:
        pass

    @abstractmethod
    def _write_invoice(self, invoice: Invoice):
        pass

    @abstractmethod
    def _read_projects(self) -> List[Project]:
        pass

    @abstractmethod
    def _write_project(self, project: Project):
        pass

    @abstractmethod
    def _read_rate_cards(self) -> List[RateCard]:
        pass

    @abstractmethod
    def _write_rate_card(self, rate_card: RateCard):
        pass

    @abstractmethod
    def _read_users(self) -> List[User]:
        pass

    @abstractmethod
    def _write_user(self, user: User):
        pass

    # Reads

    def get_invoice(self, invoice_id: str, actor: Optional[Actor] = None) -> Optional[Invoice]:
        """
        Fetch one invoice.

        Returns:
            A copy of the invoice, or None if it does not exist or is not
            visible to the actor
        """
        with self._lock:
            invoice = self._read_invoice(invoice_id)
            invoice = invoice.copy() if invoice else None
        if invoice is None:
            return None
        if actor is not None and not self.policy.can_read(actor, ResourceKind.INVOICE, invoice):
            self.logger.info(f"Invoice {invoice_id} not visible to {actor.id}")
            return None
        return invoice

    def list_invoices(self, actor: Optional[Actor]) -> List[Invoice]:
        """List invoices visible to the actor, ordered by creation time."""
        predicate = self.policy.scope_for(actor, ResourceKind.INVOICE)
        if predicate.is_empty:
            return []
        with self._lock:
            invoices = [invoice.copy() for invoice in self._read_all_invoices()]
        visible = predicate.filter(invoices)
        visible.sort(key=lambda invoice: (invoice.created_at, invoice.id))
        return visible

    def list_projects(self, actor: Optional[Actor]) -> List[Project]:
        predicate = self.policy.scope_for(actor, ResourceKind.PROJECT)
        with self._lock:
            return predicate.filter(list(self._read_projects()))

    def list_rate_cards(self, actor: Optional[Actor]) -> List[RateCard]:
        predicate = self.policy.scope_for(actor, ResourceKind.RATE_CARD)
        with self._lock:
            return predicate.filter(list(self._read_rate_cards()))

    def list_users_by_role(self, role: Any) -> List[User]:
        """
        List active users holding a directory role, ordered by name.

        Raises:
            ValidationError: If the role is missing or not listable
        """
        predicate = self.policy.directory_scope(role)
        with self._lock:
            users = predicate.filter(list(self._read_users()))
        active = [user for user in users if user.active]
        active.sort(key=lambda user: (user.name.lower(), user.id))
        return active

    # Writes

    def save_invoice(self, invoice_id: str, changes: Dict[str, Any],
                     audit_entry: Optional[AuditEntry] = None,
                     expected_version: Optional[int] = None) -> Invoice:
        """
        Apply changes to a stored invoice.

        Args:
            invoice_id: Invoice to change
            changes: Invoice attribute -> new value (see MUTABLE_FIELDS)
            audit_entry: Entry to append in the same write
            expected_version: Version the changes were computed against

        Returns:
            The stored invoice after the write

        Raises:
            NotFoundError: If the invoice does not exist
            ConcurrentModificationError: If the stored version differs from
                expected_version
            PersistenceError: If the underlying store fails
        """
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self._read_invoice(invoice_id)
            if current is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if expected_version is not None and current.version != expected_version:
                self.logger.warning(f"Version conflict on invoice {invoice_id}: "
                                    f"expected {expected_version}, stored {current.version}")
                raise ConcurrentModificationError(
                    f"Invoice {invoice_id} was modified concurrently "
                    f"(expected version {expected_version}, found {current.version})"
                )

            updated = current.copy()
            for name, value in changes.items():
                setattr(updated, name, value)
            if audit_entry is not None:
                updated.audit_trail.append(audit_entry)
            updated.version = current.version + 1
            updated.updated_at = self.clock()

            self._guarded_write(self._write_invoice, updated)
            self.logger.debug(f"Saved invoice {invoice_id} at version {updated.version}")
            return updated.copy()

    def add_invoice(self, invoice: Invoice) -> Invoice:
        """
        Store a newly ingested invoice.

        Raises:
            ValidationError: If an invoice with the same id exists
        """
        with self._lock:
            if self._read_invoice(invoice.id) is not None:
                raise ValidationError(f"Invoice {invoice.id} already exists")
            self._guarded_write(self._write_invoice, invoice.copy())
        self.logger.info(f"Added invoice {invoice.id} ({invoice.status.value})")
        return invoice

    def add_invoices(self, invoices: Iterable[Invoice]):
        for invoice in invoices:
            self.add_invoice(invoice)

    def add_project(self, project: Project) -> Project:
        with self._lock:
            self._guarded_write(self._write_project, project)
        return project

    def add_rate_card(self, rate_card: RateCard) -> RateCard:
        with self._lock:
            self._guarded_write(self._write_rate_card, rate_card)
        return rate_card

    def add_user(self, user: User) -> User:
        with self._lock:
            self._guarded_write(self._write_user, user)
        return user

    def _guarded_write(self, write: Callable[[Any], None], record: Any):
        try:
            write(record)
        except OSError as e:
            self.logger.error(f"Write failed: {e}", exc_info=True)
            raise PersistenceError(f"Failed to persist {type(record).__name__}: {e}") from e
