"""
Unit tests for the invoice lifecycle state machine.
"""

import pytest
from datetime import datetime, timezone

from invoice_lifecycle.lifecycle import (
    AuditRecorder, InvoiceStateMachine, LEGAL_TRANSITIONS, MATCHING_ELIGIBLE,
    MATCH_SUCCESS_NOTE, Provenance, TERMINAL_STATUSES, is_legal_transition,
    matching_note, requires_matching
)
from invoice_lifecycle.models import (
    ApprovalStatus, AuditAction, InvoicePatch, InvoiceStatus, MatchResult, PMApproval,
    ApprovalLockedError, InvalidTransitionError, ValidationError
)
from lifecycle_factories import ADMIN, FINANCE, PM, VENDOR, FixedClock, make_invoice


S = InvoiceStatus


def verdict(*discrepancies):
    return MatchResult(is_matched=not discrepancies, discrepancies=list(discrepancies),
                       matched_at=datetime(2024, 3, 1, tzinfo=timezone.utc))


class TestRequiresMatching:
    """Test the matching trigger predicate."""

    def test_verified_status_triggers(self):
        assert requires_matching(InvoicePatch.from_dict({'status': 'VERIFIED'})) is True

    def test_po_number_triggers_regardless_of_status(self):
        """Test a supplied PO reference triggers matching even alongside another status."""
        assert requires_matching(InvoicePatch.from_dict({'poNumber': 'PO-1'})) is True
        assert requires_matching(InvoicePatch.from_dict({'poNumber': 'PO-1', 'status': 'REJECTED'})) is True

    def test_blank_po_number_does_not_trigger(self):
        assert requires_matching(InvoicePatch.from_dict({'poNumber': ''})) is False

    def test_other_patches_do_not_trigger(self):
        assert requires_matching(InvoicePatch.from_dict({'status': 'DIGITIZING'})) is False
        assert requires_matching(InvoicePatch.from_dict({'notes': 'hello'})) is False


class TestTransitionTable:
    """Test the legal transition table."""

    def test_every_status_has_an_entry(self):
        assert set(LEGAL_TRANSITIONS) == set(InvoiceStatus)

    def test_terminal_statuses_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert LEGAL_TRANSITIONS[status] == frozenset()

    def test_matching_ineligible_after_approval(self):
        assert S.APPROVED not in MATCHING_ELIGIBLE
        assert S.PAID not in MATCHING_ELIGIBLE
        assert S.REJECTED not in MATCHING_ELIGIBLE

    def test_is_legal_transition(self):
        assert is_legal_transition(S.PENDING_APPROVAL, S.APPROVED)
        assert is_legal_transition(S.APPROVED, S.PAID)
        assert not is_legal_transition(S.RECEIVED, S.PAID)
        assert not is_legal_transition(S.PAID, S.REJECTED)

    def test_matching_note(self):
        assert matching_note(verdict()) == MATCH_SUCCESS_NOTE
        assert matching_note(verdict('a', 'b')) == "Invoice updated with matching discrepancies: a, b"
        empty_failure = MatchResult(is_matched=False, discrepancies=[], matched_at=verdict().matched_at)
        assert matching_note(empty_failure) == "Invoice updated with matching discrepancies: Unknown"


class TestInvoiceStateMachine:
    """Test transitions and approval decisions."""

    def setup_method(self):
        """Setup test environment."""
        self.clock = FixedClock()
        self.machine = InvoiceStateMachine(AuditRecorder(clock=self.clock))
        self.provenance = Provenance(ip_address='10.0.0.5', user_agent='pytest')

    def test_match_success_forces_verified(self):
        """Test a clean match moves the invoice to VERIFIED with an audit entry."""
        invoice = make_invoice()
        patch = InvoicePatch.from_dict({'poNumber': 'PO-1'})

        outcome = self.machine.transition(invoice, patch, VENDOR, self.provenance, verdict())

        assert outcome.new_status is S.VERIFIED
        assert outcome.invoice.po_number == 'PO-1'
        assert outcome.changes['matching'].is_matched is True
        entry = outcome.audit_entry
        assert entry.action == AuditAction.UPDATE_AND_MATCH.value
        assert entry.previous_status == 'RECEIVED'
        assert entry.new_status == 'VERIFIED'
        assert entry.notes == MATCH_SUCCESS_NOTE
        assert entry.ip_address == '10.0.0.5'
        assert outcome.invoice.audit_trail == [entry]

    def test_match_failure_forces_discrepancy(self):
        """Test a failed match moves the invoice to MATCH_DISCREPANCY."""
        outcome = self.machine.transition(
            make_invoice(), InvoicePatch.from_dict({'status': 'VERIFIED'}), FINANCE,
            verdict=verdict("Quantity mismatch for line L1: invoiced 10, ordered 8")
        )

        assert outcome.new_status is S.MATCH_DISCREPANCY
        assert outcome.audit_entry.notes == (
            "Invoice updated with matching discrepancies: Quantity mismatch for line L1: invoiced 10, ordered 8"
        )

    def test_match_success_overrides_requested_reject(self):
        """Test match outcome is authoritative over a status requested in the same patch."""
        patch = InvoicePatch.from_dict({'status': 'REJECTED', 'poNumber': 'PO-1'})
        outcome = self.machine.transition(make_invoice(), patch, ADMIN, verdict=verdict())
        assert outcome.new_status is S.VERIFIED

    def test_transition_does_not_mutate_input(self):
        """Test the input invoice is left untouched."""
        invoice = make_invoice()
        before = invoice.to_dict()

        self.machine.transition(invoice, InvoicePatch.from_dict({'poNumber': 'PO-1', 'notes': 'x'}),
                                VENDOR, verdict=verdict())

        assert invoice.to_dict() == before

    def test_matching_requires_verdict(self):
        with pytest.raises(ValueError):
            self.machine.transition(make_invoice(), InvoicePatch.from_dict({'status': 'VERIFIED'}), ADMIN)

    def test_matching_not_allowed_after_approval(self):
        """Test approved, paid and rejected invoices cannot re-run matching."""
        for status in (S.APPROVED, S.PAID, S.REJECTED):
            with pytest.raises(InvalidTransitionError):
                self.machine.transition(make_invoice(status=status),
                                        InvoicePatch.from_dict({'poNumber': 'PO-1'}),
                                        ADMIN, verdict=verdict())

    def test_manual_legal_transition(self):
        """Test a legal manual transition records a STATUS_CHANGE entry."""
        invoice = make_invoice(status=S.VERIFIED)
        outcome = self.machine.transition(invoice, InvoicePatch.from_dict({'status': 'PENDING_APPROVAL'}), PM)

        assert outcome.new_status is S.PENDING_APPROVAL
        assert outcome.audit_entry.action == 'STATUS_CHANGE'
        assert outcome.audit_entry.notes == "Status changed from VERIFIED to PENDING_APPROVAL"
        assert outcome.audit_entry.actor == 'Pat Manager'
        assert outcome.audit_entry.actor_role == 'PROJECT_MANAGER'
        assert 'matching' not in outcome.changes

    def test_manual_transition_uses_patch_notes(self):
        outcome = self.machine.transition(make_invoice(status=S.APPROVED),
                                          InvoicePatch.from_dict({'status': 'PAID', 'notes': 'wire 778'}),
                                          FINANCE)
        assert outcome.audit_entry.notes == 'wire 778'

    def test_illegal_transition_rejected(self):
        """Test skipping approval is refused."""
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(make_invoice(status=S.RECEIVED),
                                    InvoicePatch.from_dict({'status': 'PAID'}), ADMIN)

    def test_field_only_patch_has_no_audit_entry(self):
        """Test patches that keep the status record no audit entry."""
        outcome = self.machine.transition(make_invoice(), InvoicePatch.from_dict({'notes': 'see attachment'}), VENDOR)

        assert outcome.status_changed is False
        assert outcome.audit_entry is None
        assert outcome.invoice.notes == 'see attachment'
        assert outcome.changes == {'notes': 'see attachment', 'status': S.RECEIVED}

    def test_same_status_patch_is_noop(self):
        outcome = self.machine.transition(make_invoice(status=S.PAID),
                                          InvoicePatch.from_dict({'status': 'PAID'}), FINANCE)
        assert outcome.audit_entry is None

    def test_preview_merges_fields(self):
        """Test the matching snapshot carries the patch's field edits."""
        invoice = make_invoice()
        snapshot = self.machine.preview(invoice, InvoicePatch.from_dict({
            'poNumber': 'PO-2', 'lineItems': [{'quantity': 1, 'unitRate': 5}]
        }))

        assert snapshot.po_number == 'PO-2'
        assert len(snapshot.line_items) == 1
        assert snapshot.line_items[0].unit_rate == 5
        assert invoice.po_number is None

    def test_system_actor(self):
        """Test transitions without an actor are recorded as System."""
        outcome = self.machine.transition(make_invoice(), InvoicePatch.from_dict({'status': 'DIGITIZING'}), None)

        assert outcome.audit_entry.actor == 'System'
        assert outcome.audit_entry.actor_id is None
        assert outcome.audit_entry.actor_role == 'SYSTEM'


class TestApprovalDecisions:
    """Test project-manager approval decisions."""

    def setup_method(self):
        """Setup test environment."""
        self.clock = FixedClock()
        self.machine = InvoiceStateMachine(AuditRecorder(clock=self.clock))

    def test_approve_pending_invoice(self):
        invoice = make_invoice(status=S.PENDING_APPROVAL)
        outcome = self.machine.decide_approval(invoice, ApprovalStatus.APPROVED, PM, notes='looks right')

        assert outcome.new_status is S.APPROVED
        assert outcome.invoice.pm_approval.status is ApprovalStatus.APPROVED
        assert outcome.invoice.pm_approval.actor_id == 'pm-1'
        assert outcome.audit_entry.action == 'PM_APPROVAL'
        assert outcome.audit_entry.notes == 'looks right'

    def test_reject_pending_invoice_default_note(self):
        outcome = self.machine.decide_approval(make_invoice(status=S.PENDING_APPROVAL),
                                               ApprovalStatus.REJECTED, PM)
        assert outcome.new_status is S.REJECTED
        assert outcome.audit_entry.notes == 'Invoice rejected by Pat Manager'

    def test_requires_pending_approval(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.decide_approval(make_invoice(status=S.VERIFIED), ApprovalStatus.APPROVED, PM)

    def test_decision_must_be_final(self):
        with pytest.raises(ValidationError):
            self.machine.decide_approval(make_invoice(status=S.PENDING_APPROVAL), ApprovalStatus.PENDING, PM)

    def test_final_decision_is_locked(self):
        """Test an existing decision cannot be changed without an override."""
        invoice = make_invoice(status=S.PENDING_APPROVAL,
                               pm_approval=PMApproval(status=ApprovalStatus.REJECTED, actor_id='pm-1'))
        with pytest.raises(ApprovalLockedError):
            self.machine.decide_approval(invoice, ApprovalStatus.APPROVED, PM)

    def test_override_reverses_decision(self):
        """Test an override moves an invoice out of REJECTED."""
        invoice = make_invoice(status=S.REJECTED,
                               pm_approval=PMApproval(status=ApprovalStatus.REJECTED, actor_id='pm-1'))

        outcome = self.machine.decide_approval(invoice, ApprovalStatus.APPROVED, ADMIN, override=True)

        assert outcome.new_status is S.APPROVED
        assert outcome.audit_entry.action == 'APPROVAL_OVERRIDE'
        assert outcome.audit_entry.notes == 'Override: Invoice approved by Ada Admin'

    def test_override_never_leaves_paid(self):
        invoice = make_invoice(status=S.PAID,
                               pm_approval=PMApproval(status=ApprovalStatus.APPROVED, actor_id='pm-1'))
        with pytest.raises(InvalidTransitionError):
            self.machine.decide_approval(invoice, ApprovalStatus.REJECTED, ADMIN, override=True)


class TestManualEditsAndDecisions:
    """Test status edits cannot stand in for, or reverse, an approval decision."""

    def setup_method(self):
        """Setup test environment."""
        self.machine = InvoiceStateMachine(AuditRecorder(clock=FixedClock()))

    @pytest.mark.parametrize('status', ['APPROVED', 'REJECTED'])
    def test_pending_invoice_cannot_be_decided_by_edit(self, status):
        invoice = make_invoice(status=S.PENDING_APPROVAL)
        with pytest.raises(InvalidTransitionError, match='approval endpoint'):
            self.machine.transition(invoice, InvoicePatch.from_dict({'status': status}), PM)

    def test_final_approval_not_reversed_by_finance(self):
        invoice = make_invoice(status=S.APPROVED,
                               pm_approval=PMApproval(status=ApprovalStatus.APPROVED, actor_id='pm-1'))
        with pytest.raises(ApprovalLockedError):
            self.machine.transition(invoice, InvoicePatch.from_dict({'status': 'REJECTED'}), FINANCE)

    def test_admin_may_reverse_final_approval(self):
        invoice = make_invoice(status=S.APPROVED,
                               pm_approval=PMApproval(status=ApprovalStatus.APPROVED, actor_id='pm-1'))

        outcome = self.machine.transition(invoice, InvoicePatch.from_dict({'status': 'REJECTED'}), ADMIN)

        assert outcome.new_status is S.REJECTED

    def test_payment_after_approval_allowed(self):
        invoice = make_invoice(status=S.APPROVED,
                               pm_approval=PMApproval(status=ApprovalStatus.APPROVED, actor_id='pm-1'))
        outcome = self.machine.transition(invoice, InvoicePatch.from_dict({'status': 'PAID'}), FINANCE)
        assert outcome.new_status is S.PAID
