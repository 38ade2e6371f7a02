"""
Unit tests for audit recording and request provenance.
"""

import pytest

from invoice_lifecycle.lifecycle import AuditRecorder, Provenance, StatusChange
from invoice_lifecycle.models import Actor, AuditAction, InvoiceStatus
from lifecycle_factories import FINANCE, FixedClock, make_invoice


class TestProvenance:
    """Test provenance extraction from request headers."""

    def test_first_forwarded_hop_wins(self):
        provenance = Provenance.from_headers({
            'X-Forwarded-For': '203.0.113.7, 10.0.0.1',
            'X-Real-IP': '10.0.0.9',
            'User-Agent': 'Mozilla/5.0'
        })
        assert provenance.ip_address == '203.0.113.7'
        assert provenance.user_agent == 'Mozilla/5.0'

    def test_real_ip_fallback(self):
        provenance = Provenance.from_headers({'x-real-ip': '10.0.0.9'})
        assert provenance.ip_address == '10.0.0.9'
        assert provenance.user_agent == 'unknown'

    def test_defaults_to_unknown(self):
        provenance = Provenance.from_headers({})
        assert provenance == Provenance('unknown', 'unknown')


class TestAuditRecorder:
    """Test audit entry construction."""

    def setup_method(self):
        """Setup test environment."""
        self.clock = FixedClock()
        self.recorder = AuditRecorder(clock=self.clock)
        self.change = StatusChange(InvoiceStatus.APPROVED, InvoiceStatus.PAID,
                                   AuditAction.STATUS_CHANGE, 'paid by wire')

    def test_records_actor_and_provenance(self):
        entry = self.recorder.record(make_invoice(), self.change, FINANCE,
                                     Provenance('198.51.100.2', 'curl/8'))

        assert entry.action == 'STATUS_CHANGE'
        assert entry.actor == 'Fin User'
        assert entry.actor_id == 'finance-1'
        assert entry.actor_role == 'FINANCE_USER'
        assert entry.previous_status == 'APPROVED'
        assert entry.new_status == 'PAID'
        assert entry.notes == 'paid by wire'
        assert entry.ip_address == '198.51.100.2'
        assert entry.user_agent == 'curl/8'

    def test_unknown_role_recorded_as_unknown(self):
        entry = self.recorder.record(make_invoice(), self.change, Actor(id='x-1'))
        assert entry.actor == 'x-1'
        assert entry.actor_role == 'UNKNOWN'

    def test_deterministic_for_same_clock_reading(self):
        """Test identical inputs and clock readings produce identical entries."""
        first = AuditRecorder(clock=FixedClock()).record(make_invoice(), self.change, FINANCE)
        second = AuditRecorder(clock=FixedClock()).record(make_invoice(), self.change, FINANCE)
        assert first == second

    def test_entries_are_frozen(self):
        entry = self.recorder.record(make_invoice(), self.change, None)
        with pytest.raises(AttributeError):
            entry.new_status = 'REJECTED'
