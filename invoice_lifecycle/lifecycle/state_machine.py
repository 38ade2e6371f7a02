"""
Invoice lifecycle state machine.

Owns the legal status transitions and decides the status an invoice ends up
in after an update. Matching outcomes are authoritative: when a patch
triggers matching, a clean match forces VERIFIED and any discrepancy forces
MATCH_DISCREPANCY, whatever status the caller asked for.

The machine is pure: it never mutates the invoice it is given and performs no
I/O. The caller runs the matcher (when requires_matching says so) and passes
the verdict in.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional

from invoice_lifecycle.models import (
    Actor, ApprovalStatus, AuditAction, AuditEntry, Invoice, InvoicePatch,
    InvoiceStatus, MatchResult, PMApproval, Role,
    ApprovalLockedError, InvalidTransitionError, ValidationError
)
from .audit import AuditRecorder, Provenance, StatusChange

import logging
logger = logging.getLogger(__name__)


S = InvoiceStatus

LEGAL_TRANSITIONS: Mapping[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    S.SUBMITTED: frozenset({S.RECEIVED, S.DIGITIZING, S.VALIDATION_REQUIRED}),
    S.RECEIVED: frozenset({S.DIGITIZING, S.VALIDATION_REQUIRED}),
    S.DIGITIZING: frozenset({S.VALIDATION_REQUIRED}),
    S.VALIDATION_REQUIRED: frozenset({S.DIGITIZING}),
    S.VERIFIED: frozenset({S.PENDING_APPROVAL, S.REJECTED}),
    S.MATCH_DISCREPANCY: frozenset({S.VALIDATION_REQUIRED, S.REJECTED}),
    S.PENDING_APPROVAL: frozenset({S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset({S.PAID, S.REJECTED}),
    S.PAID: frozenset(),
    S.REJECTED: frozenset(),
}

# Statuses from which a patch may (re-)run matching
MATCHING_ELIGIBLE: FrozenSet[InvoiceStatus] = frozenset({
    S.SUBMITTED, S.RECEIVED, S.DIGITIZING, S.VALIDATION_REQUIRED,
    S.VERIFIED, S.MATCH_DISCREPANCY, S.PENDING_APPROVAL,
})

TERMINAL_STATUSES: FrozenSet[InvoiceStatus] = frozenset({S.PAID, S.REJECTED})

MATCH_SUCCESS_NOTE = "Invoice updated and matched successfully"
MATCH_DISCREPANCY_NOTE = "Invoice updated with matching discrepancies: {}"
DISCREPANCY_FALLBACK = "Unknown"
DISCREPANCY_DELIMITER = ", "


def requires_matching(patch: InvoicePatch) -> bool:
    """
    Decide whether a patch must run three-way matching.

    Matching runs when the patch asks for VERIFIED, or when it supplies a
    purchase-order reference, regardless of any status it requests.
    """
    if patch.status == InvoiceStatus.VERIFIED:
        return True
    return 'poNumber' in patch.fields and bool(patch.po_number)


def is_legal_transition(current: InvoiceStatus, requested: InvoiceStatus) -> bool:
    return requested in LEGAL_TRANSITIONS.get(current, frozenset())


def matching_note(result: MatchResult) -> str:
    """Audit note for a matching-driven status change."""
    if result.is_matched:
        return MATCH_SUCCESS_NOTE
    detail = DISCREPANCY_DELIMITER.join(result.discrepancies) or DISCREPANCY_FALLBACK
    return MATCH_DISCREPANCY_NOTE.format(detail)


@dataclass
class TransitionOutcome:
    """
    Result of applying a patch or decision to an invoice.

    `invoice` is the new in-memory state (audit entry already appended);
    `changes` maps invoice attributes to their new values and is what the
    repository persists together with `audit_entry`.
    """
    invoice: Invoice
    previous_status: InvoiceStatus
    audit_entry: Optional[AuditEntry] = None
    changes: Dict[str, Any] = field(default_factory=dict)

    @property
    def new_status(self) -> InvoiceStatus:
        return self.invoice.status

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.invoice.status

    @property
    def matching(self) -> Optional[MatchResult]:
        return self.invoice.matching


class InvoiceStateMachine:
    """Resolves status transitions and builds their audit entries."""

    def __init__(self, recorder: Optional[AuditRecorder] = None):
        self.recorder = recorder or AuditRecorder()
        self.logger = logging.getLogger(f"{__name__}.InvoiceStateMachine")

    def check_matching_allowed(self, invoice: Invoice):
        """
        Raises:
            InvalidTransitionError: If the invoice is past the point where
                matching may re-run
        """
        if invoice.status not in MATCHING_ELIGIBLE:
            raise InvalidTransitionError(
                f"Invoice {invoice.id} is {invoice.status.value}; matching can no longer be re-run"
            )

    @staticmethod
    def _field_changes(patch: InvoicePatch) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if 'poNumber' in patch.fields:
            changes['po_number'] = patch.po_number
        if patch.line_items is not None:
            changes['line_items'] = patch.line_items
        if 'notes' in patch.fields:
            changes['notes'] = patch.notes
        if patch.amount is not None:
            changes['amount'] = patch.amount
        return changes

    def preview(self, invoice: Invoice, patch: InvoicePatch) -> Invoice:
        """The invoice with the patch's field edits merged in; used as the matching snapshot."""
        snapshot = invoice.copy()
        for name, value in self._field_changes(patch).items():
            setattr(snapshot, name, value)
        return snapshot

    def transition(self, invoice: Invoice, patch: InvoicePatch, actor: Optional[Actor],
                   provenance: Optional[Provenance] = None,
                   verdict: Optional[MatchResult] = None) -> TransitionOutcome:
        """
        Apply a patch to an invoice.

        Args:
            invoice: Current persisted invoice
            patch: Validated update request
            actor: Caller (None for system actions)
            provenance: Request origin recorded on the audit entry
            verdict: Match result; required when requires_matching(patch)

        Returns:
            TransitionOutcome with the new state and, if the status changed,
            its audit entry

        Raises:
            InvalidTransitionError: If the requested status is not reachable
            ApprovalLockedError: If a status edit reverses a final PM decision
        """
        previous = invoice.status
        changes = self._field_changes(patch)

        if requires_matching(patch):
            self.check_matching_allowed(invoice)
            if verdict is None:
                raise ValueError("A matching verdict is required for this patch")
            resolved = S.VERIFIED if verdict.is_matched else S.MATCH_DISCREPANCY
            if patch.status is not None and patch.status != resolved:
                self.logger.info(f"Invoice {invoice.id}: matching outcome {resolved.value} "
                                 f"overrides requested status {patch.status.value}")
            changes['matching'] = verdict
            action = AuditAction.UPDATE_AND_MATCH
            notes = matching_note(verdict)
        elif patch.status is not None and patch.status != previous:
            if not is_legal_transition(previous, patch.status):
                raise InvalidTransitionError(
                    f"Illegal transition for invoice {invoice.id}: {previous.value} -> {patch.status.value}"
                )
            self._check_manual_decision(invoice, patch.status, actor)
            resolved = patch.status
            action = AuditAction.STATUS_CHANGE
            notes = patch.notes or f"Status changed from {previous.value} to {resolved.value}"
        else:
            resolved = previous
            action = None
            notes = ''

        changes['status'] = resolved
        return self._outcome(invoice, changes, previous, action, notes, actor, provenance)

    def _check_manual_decision(self, invoice: Invoice, requested: InvoiceStatus,
                               actor: Optional[Actor]):
        """
        Approval outcomes are owned by decide_approval: a status edit may not
        stand in for a PM decision, and only ADMIN may contradict a final one.

        Raises:
            InvalidTransitionError: If the edit would decide a pending approval
            ApprovalLockedError: If the edit reverses a final decision
        """
        if invoice.status == S.PENDING_APPROVAL and requested in (S.APPROVED, S.REJECTED):
            raise InvalidTransitionError(
                f"Invoice {invoice.id} is awaiting approval; record the decision through the approval endpoint"
            )
        decision = invoice.pm_approval.status
        contradicts = (
            (decision == ApprovalStatus.APPROVED and requested == S.REJECTED)
            or (decision == ApprovalStatus.REJECTED and requested == S.APPROVED)
        )
        if contradicts and not (actor and actor.role == Role.ADMIN):
            raise ApprovalLockedError(
                f"Invoice {invoice.id} was already {decision.value}; only an admin may override it"
            )

    def decide_approval(self, invoice: Invoice, decision: ApprovalStatus, actor: Actor,
                        notes: Optional[str] = None, override: bool = False,
                        provenance: Optional[Provenance] = None) -> TransitionOutcome:
        """
        Record a project-manager approval decision.

        A final decision (APPROVED/REJECTED) is immutable; changing it takes
        an explicit override. Paid invoices can never be re-decided.

        Raises:
            ValidationError: If the decision is not APPROVED or REJECTED
            InvalidTransitionError: If the invoice is not awaiting approval
            ApprovalLockedError: If a final decision exists and override is False
        """
        if decision not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
            raise ValidationError(f"Approval decision must be APPROVED or REJECTED, got {decision.value}")
        if invoice.status == S.PAID:
            raise InvalidTransitionError(f"Invoice {invoice.id} is already paid")
        if invoice.pm_approval.is_final and not override:
            raise ApprovalLockedError(
                f"Invoice {invoice.id} was already {invoice.pm_approval.status.value}; an override is required"
            )
        if not override and invoice.status != S.PENDING_APPROVAL:
            raise InvalidTransitionError(
                f"Invoice {invoice.id} is {invoice.status.value}, not awaiting approval"
            )

        approval = PMApproval(
            status=decision,
            actor_id=actor.id,
            actor_role=actor.role.value if actor.role else None,
            timestamp=self.recorder.clock(),
            notes=notes
        )
        action = AuditAction.APPROVAL_OVERRIDE if override else AuditAction.PM_APPROVAL
        default_note = f"{'Override: ' if override else ''}Invoice {decision.value.lower()} by {actor.display_name}"
        changes = {'pm_approval': approval, 'status': InvoiceStatus(decision.value)}
        return self._outcome(invoice, changes, invoice.status, action, notes or default_note,
                             actor, provenance)

    def _outcome(self, invoice: Invoice, changes: Dict[str, Any], previous: InvoiceStatus,
                 action: Optional[AuditAction], notes: str, actor: Optional[Actor],
                 provenance: Optional[Provenance]) -> TransitionOutcome:
        updated = invoice.copy()
        for name, value in changes.items():
            setattr(updated, name, value)

        entry = None
        if updated.status != previous:
            change = StatusChange(previous, updated.status, action or AuditAction.STATUS_CHANGE, notes)
            entry = self.recorder.record(updated, change, actor, provenance)
            updated.audit_trail.append(entry)

        return TransitionOutcome(invoice=updated, previous_status=previous,
                                 audit_entry=entry, changes=changes)
