"""
Invoice service: orchestrates reads, updates and approval decisions.

For an update the service authorizes the caller, runs three-way matching in a
worker thread when the patch requires it, asks the state machine for the
resulting transition and commits it with a version check. A version
conflict re-reads the invoice and recomputes, up to max_conflict_retries
times, so concurrent patches apply one after the other and never merge
against a stale snapshot.
"""

import asyncio
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from invoice_lifecycle.access import AccessPolicyResolver
from invoice_lifecycle.documents import DocumentStore
from invoice_lifecycle.lifecycle import (
    InvoiceStateMachine, Provenance, TransitionOutcome, requires_matching
)
from invoice_lifecycle.matching import ThreeWayMatcher
from invoice_lifecycle.models import (
    Actor, ApprovalStatus, AuditEntry, Invoice, InvoicePatch, InvoiceStatus,
    Project, RateCard, Role, quantize_money, utc_now,
    ConcurrentModificationError, InvoiceLifecycleError, NotFoundError, ValidationError
)
from invoice_lifecycle.repository import InvoiceRepository

import logging
logger = logging.getLogger(__name__)


UPDATE_MESSAGE = "Invoice updated successfully"
PROCESSING_STATUSES = frozenset({InvoiceStatus.DIGITIZING, InvoiceStatus.RECEIVED})


@dataclass
class UpdateResult:
    """Outcome of a committed update or approval decision."""
    invoice: Invoice
    audit_entry: Optional[AuditEntry] = None
    message: str = UPDATE_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {'message': self.message, 'invoice': self.invoice.to_dict()}


class InvoiceService:
    """
    Application service for the invoice lifecycle.

    All methods are coroutines; blocking connector I/O runs through
    asyncio.to_thread and never holds a repository lock.
    """

    def __init__(self, repository: InvoiceRepository, matcher: ThreeWayMatcher,
                 state_machine: Optional[InvoiceStateMachine] = None,
                 policy: Optional[AccessPolicyResolver] = None,
                 documents: Optional[DocumentStore] = None,
                 max_conflict_retries: int = 3):
        """
        Initialize the service.

        Args:
            repository: Invoice store
            matcher: Three-way matcher used when a patch requires matching
            state_machine: Transition rules (default InvoiceStateMachine())
            policy: Access policy (defaults to the repository's)
            documents: Supporting document store for dashboard enrichment
            max_conflict_retries: Recomputations allowed after version conflicts
        """
        self.repository = repository
        self.matcher = matcher
        self.state_machine = state_machine or InvoiceStateMachine()
        self.policy = policy or repository.policy
        self.documents = documents
        self.max_conflict_retries = max_conflict_retries
        self.logger = logging.getLogger(f"{__name__}.InvoiceService")

    async def get_invoice(self, invoice_id: str, actor: Optional[Actor]) -> Invoice:
        """
        Raises:
            AuthenticationError: If there is no caller
            NotFoundError: If the invoice is missing or not visible
        """
        actor = self.policy.require_authenticated(actor)
        invoice = self.repository.get_invoice(invoice_id, actor)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    async def list_invoices(self, actor: Optional[Actor]) -> List[Invoice]:
        actor = self.policy.require_authenticated(actor)
        return self.repository.list_invoices(actor)

    async def list_projects(self, actor: Optional[Actor]) -> List[Project]:
        actor = self.policy.require_authenticated(actor)
        return self.repository.list_projects(actor)

    async def list_rate_cards(self, actor: Optional[Actor]) -> List[RateCard]:
        actor = self.policy.require_authenticated(actor)
        return self.repository.list_rate_cards(actor)

    async def list_users_by_role(self, role: Any) -> List[Dict[str, Any]]:
        """
        Public directory of active users in a listable role, as {id, name}.

        Raises:
            ValidationError: If the role is missing or not listable
        """
        users = self.repository.list_users_by_role(role)
        self.logger.debug(f"Directory lookup for {role!r}: {len(users)} users")
        return [user.summary() for user in users]

    def _load_for_write(self, invoice_id: str) -> Invoice:
        invoice = self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    async def _commit(self, invoice_id: str,
                      compute: Callable[[Invoice], Awaitable[TransitionOutcome]]) -> UpdateResult:
        """Compute a transition against the current version and commit it, retrying on conflicts."""
        conflicts = 0
        while True:
            invoice = self._load_for_write(invoice_id)
            outcome = await compute(invoice)
            try:
                saved = self.repository.save_invoice(
                    invoice_id, outcome.changes, outcome.audit_entry,
                    expected_version=invoice.version
                )
            except ConcurrentModificationError:
                conflicts += 1
                if conflicts > self.max_conflict_retries:
                    self.logger.error(f"Giving up on invoice {invoice_id} after {conflicts} version conflicts")
                    raise
                self.logger.info(f"Version conflict on invoice {invoice_id}, recomputing "
                                 f"(attempt {conflicts}/{self.max_conflict_retries})")
                continue

            if outcome.status_changed:
                self.logger.info(f"Invoice {invoice_id}: {outcome.previous_status.value} -> "
                                 f"{outcome.new_status.value} (version {saved.version})")
            return UpdateResult(invoice=saved, audit_entry=outcome.audit_entry)

    async def update_invoice(self, invoice_id: str, patch: Union[InvoicePatch, Dict[str, Any]],
                             actor: Optional[Actor],
                             provenance: Optional[Provenance] = None) -> UpdateResult:
        """
        Apply a patch to an invoice.

        Args:
            invoice_id: Invoice to update
            patch: Validated patch, or the raw JSON body
            actor: Caller
            provenance: Request origin for the audit trail

        Returns:
            UpdateResult with the stored invoice and any audit entry

        Raises:
            AuthenticationError, ForbiddenError: On authorization failure
            NotFoundError: If the invoice does not exist
            ValidationError: On a malformed patch, illegal transition or
                missing mandatory PO
            MatchingDependencyError: If PO or receipt lookup fails
            ConcurrentModificationError: If conflicts exceed the retry limit
        """
        actor = self.policy.require_authenticated(actor)
        if not isinstance(patch, InvoicePatch):
            patch = InvoicePatch.from_dict(patch)

        async def compute(invoice: Invoice) -> TransitionOutcome:
            self.policy.authorize_update(actor, invoice, patch)
            verdict = None
            if requires_matching(patch):
                self.state_machine.check_matching_allowed(invoice)
                snapshot = self.state_machine.preview(invoice, patch)
                verdict = await asyncio.to_thread(self.matcher.match, snapshot)
            return self.state_machine.transition(invoice, patch, actor, provenance, verdict)

        return await self._commit(invoice_id, compute)

    async def decide_approval(self, invoice_id: str, decision: Union[ApprovalStatus, str],
                              actor: Optional[Actor], notes: Optional[str] = None,
                              override: bool = False,
                              provenance: Optional[Provenance] = None) -> UpdateResult:
        """
        Record a project-manager approval decision.

        Raises:
            ValidationError: If the decision is not APPROVED or REJECTED
            ApprovalLockedError: If a final decision exists and override is False
            ForbiddenError: If the caller may not decide (or override)
        """
        actor = self.policy.require_authenticated(actor)
        if not isinstance(decision, ApprovalStatus):
            try:
                decision = ApprovalStatus(str(decision).strip().upper())
            except ValueError:
                raise ValidationError(f"Invalid approval decision: {decision}")

        async def compute(invoice: Invoice) -> TransitionOutcome:
            self.policy.authorize_approval(actor, invoice, override)
            return self.state_machine.decide_approval(
                invoice, decision, actor, notes=notes, override=override, provenance=provenance
            )

        result = await self._commit(invoice_id, compute)
        result.message = f"Invoice {decision.value.lower()}"
        return result

    async def vendor_dashboard(self, actor: Optional[Actor], today: Optional[date] = None) -> Dict[str, Any]:
        """
        Build the vendor dashboard: stats, invoices with their supporting
        documents, and currently active rate cards.

        Raises:
            AuthenticationError: If there is no caller
            ForbiddenError: If the caller is neither a vendor nor an admin
        """
        actor = self.policy.require_role(actor, Role.VENDOR, Role.ADMIN)
        invoices = self.repository.list_invoices(actor)

        docs = self.documents.documents_for(inv.id for inv in invoices) if self.documents else {}
        enriched = []
        for invoice in invoices:
            data = invoice.to_dict()
            data['additionalDocs'] = docs.get(invoice.id, [])
            enriched.append(data)

        total = sum((invoice.amount for invoice in invoices), Decimal("0"))
        stats = {
            'totalInvoices': len(invoices),
            'paidCount': sum(1 for inv in invoices if inv.status == InvoiceStatus.PAID),
            'processingCount': sum(1 for inv in invoices if inv.status in PROCESSING_STATUSES),
            'totalBillingVolume': str(quantize_money(total))
        }

        today = today or utc_now().date()
        try:
            rate_cards = [card.to_dict() for card in self.repository.list_rate_cards(actor)
                          if card.is_active_on(today)]
        except InvoiceLifecycleError as e:
            self.logger.warning(f"Rate cards unavailable for dashboard of {actor.id}: {e}")
            rate_cards = []

        return {'stats': stats, 'invoices': enriched, 'rateCards': rate_cards}
