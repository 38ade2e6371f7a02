"""
Unit tests for three-way matching of invoices against purchase orders and
goods receipts.
"""

import pytest
from decimal import Decimal
from unittest.mock import Mock

from invoice_lifecycle.connectors import ConnectorError, InMemoryConnector
from invoice_lifecycle.matching import ThreeWayMatcher
from invoice_lifecycle.matching.three_way_matcher import format_money, format_quantity
from invoice_lifecycle.models import (
    LineItem, MatchingSettings, POLine, MatchingDependencyError, PORequiredError
)
from lifecycle_factories import (
    FixedClock, goods_invoice, line, make_invoice, make_po, make_receipt
)


class TestFormatting:
    """Test discrepancy number formatting."""

    def test_format_quantity(self):
        assert format_quantity(Decimal('10.00')) == '10'
        assert format_quantity(Decimal('7.50')) == '7.5'

    def test_format_money(self):
        assert format_money(Decimal('120')) == '120.00'
        assert format_money(Decimal('99.995')) == '100.00'


class TestThreeWayMatcher:
    """Test cases for ThreeWayMatcher."""

    def setup_method(self):
        """Setup test environment."""
        self.clock = FixedClock()
        self.connector = InMemoryConnector([make_po()])
        self.matcher = ThreeWayMatcher(self.connector, clock=self.clock)

    def test_clean_match(self):
        """Test an invoice agreeing with its PO matches with no discrepancies."""
        result = self.matcher.match(make_invoice(po_number='PO-1'))

        assert result.is_matched is True
        assert result.discrepancies == []
        assert result.reference['poNumber'] == 'PO-1'
        assert result.reference['purchaseOrder']['total'] == '1000.00'
        assert result.reference['tolerances'] == MatchingSettings().to_dict()

    def test_quantity_over_ordered(self):
        """Test billing more hours than ordered yields one quantity discrepancy."""
        self.connector.add_purchase_order(make_po(lines=[
            POLine('L1', 'Developer', Decimal('8'), Decimal('100'))
        ]))

        result = self.matcher.match(make_invoice(po_number='PO-1'))

        assert result.is_matched is False
        assert result.discrepancies == ["Quantity mismatch for line L1: invoiced 10, ordered 8"]

    def test_rate_and_total_mismatch(self):
        """Test an inflated rate is reported along with the total difference."""
        invoice = make_invoice(po_number='PO-1', amount=Decimal('1200.00'),
                               line_items=[line(rate='120')])

        result = self.matcher.match(invoice)

        assert result.discrepancies == [
            "Rate mismatch for line L1: invoiced 120.00, approved 100.00",
            "Total mismatch: invoiced 1200.00, purchase order 1000.00"
        ]

    def test_rate_within_one_cent(self):
        """Test the default rate band absorbs a one cent difference."""
        invoice = make_invoice(po_number='PO-1', line_items=[line(rate='100.01')])
        assert self.matcher.match(invoice).is_matched is True

    def test_total_within_percentage_band(self):
        """Test a 0.4% total difference is tolerated."""
        invoice = make_invoice(po_number='PO-1', amount=Decimal('1004.00'))
        assert self.matcher.match(invoice).is_matched is True

    def test_total_outside_band(self):
        """Test a total beyond both bands is a discrepancy."""
        invoice = make_invoice(po_number='PO-1', amount=Decimal('1006.00'))
        result = self.matcher.match(invoice)
        assert result.discrepancies == ["Total mismatch: invoiced 1006.00, purchase order 1000.00"]

    def test_missing_po_reference_for_services(self):
        """Test a services invoice without a PO reference is a discrepancy, not an error."""
        result = self.matcher.match(make_invoice())

        assert result.is_matched is False
        assert result.discrepancies == ["Missing purchase order reference"]

    def test_missing_po_reference_for_goods_raises(self):
        """Test goods invoices require a PO reference."""
        with pytest.raises(PORequiredError):
            self.matcher.match(goods_invoice())

    def test_po_not_found(self):
        """Test an unknown PO number is a discrepancy."""
        result = self.matcher.match(make_invoice(po_number='PO-404'))
        assert result.discrepancies == ["Purchase order PO-404 not found"]
        assert result.reference['purchaseOrder'] is None

    def test_vendor_mismatch(self):
        """Test a PO issued to another vendor is flagged."""
        self.connector.add_purchase_order(make_po('PO-2', vendor_id='V-2'))
        result = self.matcher.match(make_invoice(po_number='PO-2'))
        assert result.discrepancies == ["Vendor mismatch: invoice vendor V-1, purchase order vendor V-2"]

    def test_goods_compared_against_receipt(self):
        """Test goods quantities are compared with the received quantity."""
        self.connector.add_receipt(make_receipt(received={'L1': '8'}))

        result = self.matcher.match(goods_invoice(po_number='PO-1'))

        assert result.discrepancies == ["Quantity mismatch for line L1: invoiced 10, received 8"]
        assert result.reference['receipt']['receiptId'] == 'GR-PO-1'

    def test_goods_without_receipt(self):
        """Test a required receipt that is missing is one discrepancy."""
        result = self.matcher.match(goods_invoice(po_number='PO-1'))
        assert result.discrepancies == ["No goods receipt found for purchase order PO-1"]

    def test_services_use_receipt_when_present(self):
        """Test an optional receipt still drives the quantity comparison."""
        self.connector.add_receipt(make_receipt(received={'L1': '9'}))
        result = self.matcher.match(make_invoice(po_number='PO-1'))
        assert result.discrepancies == ["Quantity mismatch for line L1: invoiced 10, received 9"]

    def test_unknown_po_line(self):
        """Test billing a line the PO does not have."""
        invoice = make_invoice(po_number='PO-1', line_items=[line(role='Architect', po_line_ref='L9')])
        result = self.matcher.match(invoice)
        assert result.discrepancies == ["No purchase order line for L9"]

    def test_role_fallback_when_no_line_reference(self):
        """Test lines without a PO line reference are matched by role, case-insensitively."""
        invoice = make_invoice(po_number='PO-1', line_items=[line(role='developer', po_line_ref=None)])
        assert self.matcher.match(invoice).is_matched is True

    def test_numeric_line_reference_matches(self):
        """Test a line reference sent as a number resolves against the PO line."""
        self.connector.add_purchase_order(make_po(lines=[
            POLine('1', 'Developer', Decimal('10'), Decimal('100'))
        ]))
        invoice = make_invoice(po_number='PO-1', line_items=[
            LineItem.from_dict({'poLineRef': 1, 'quantity': 10, 'unitRate': 100})
        ])

        assert self.matcher.match(invoice).is_matched is True

    def test_duplicate_references_aggregated(self):
        """Test split lines against one PO line are summed before comparing."""
        split = make_invoice(po_number='PO-1', line_items=[
            line('1', quantity='6'), line('2', quantity='4')
        ])
        over = make_invoice(po_number='PO-1', amount=Decimal('1200.00'), line_items=[
            line('1', quantity='6'), line('2', quantity='6')
        ])

        assert self.matcher.match(split).is_matched is True
        assert self.matcher.match(over).discrepancies == [
            "Quantity mismatch for line L1: invoiced 12, ordered 10",
            "Total mismatch: invoiced 1200.00, purchase order 1000.00"
        ]

    def test_zero_line_items_zero_total(self):
        """Test an empty zero-value invoice matches."""
        invoice = make_invoice(po_number='PO-1', line_items=[], amount=Decimal('0'))
        assert self.matcher.match(invoice).is_matched is True

    def test_zero_line_items_total_only(self):
        """Test an invoice without lines is judged on its total alone."""
        close = make_invoice(po_number='PO-1', line_items=[], amount=Decimal('1000.50'))
        far = make_invoice(po_number='PO-1', line_items=[], amount=Decimal('900.00'))

        assert self.matcher.match(close).is_matched is True
        assert self.matcher.match(far).discrepancies == [
            "Total mismatch: invoiced 900.00, purchase order 1000.00"
        ]

    def test_lookup_failure_is_dependency_error(self):
        """Test connector failures surface as MatchingDependencyError, never as discrepancies."""
        connector = Mock()
        connector.get_purchase_order.side_effect = ConnectorError("timeout")
        matcher = ThreeWayMatcher(connector, clock=self.clock)

        with pytest.raises(MatchingDependencyError, match='PO-1'):
            matcher.match(make_invoice(po_number='PO-1'))

    def test_custom_settings(self):
        """Test configured tolerances replace the defaults."""
        settings = MatchingSettings(quantity_tolerance_absolute=Decimal('2'))
        self.connector.add_purchase_order(make_po(lines=[
            POLine('L1', 'Developer', Decimal('8'), Decimal('100'))
        ]))
        matcher = ThreeWayMatcher(self.connector, settings, clock=self.clock)

        assert matcher.match(make_invoice(po_number='PO-1')).is_matched is True

    def test_deterministic(self):
        """Test the same snapshot and source data give the same verdict."""
        self.connector.add_purchase_order(make_po(total='900.00', lines=[
            POLine('L1', 'Developer', Decimal('9'), Decimal('95'))
        ]))
        invoice = make_invoice(po_number='PO-1')

        first = self.matcher.match(invoice)
        second = self.matcher.match(invoice)

        assert first.is_matched == second.is_matched
        assert first.discrepancies == second.discrepancies
        assert first.reference == second.reference
        assert len(first.discrepancies) == 3
