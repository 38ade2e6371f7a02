"""
Three-way matching of invoices against purchase orders and goods receipts.

The matcher resolves the purchase order an invoice references, resolves the
goods receipt where one is required or available, and compares each billed
line's quantity and rate, then the invoice total, within the configured
tolerance bands. Every failing comparison yields one human-readable
discrepancy; the invoice is matched iff there are none.
"""

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from invoice_lifecycle.connectors.base_connector import BaseConnector, ConnectorError
from invoice_lifecycle.models import (
    GoodsReceipt, Invoice, InvoiceCategory, LineItem, MatchResult, MatchingSettings,
    MatchingDependencyError, PORequiredError, POLine, PurchaseOrder,
    quantize_money, utc_now
)
from .tolerance_matcher import ToleranceMatcher

import logging
logger = logging.getLogger(__name__)


PO_MANDATORY_CATEGORIES = frozenset({InvoiceCategory.GOODS})
RECEIPT_REQUIRED_CATEGORIES = frozenset({InvoiceCategory.GOODS})

ZERO = Decimal("0")


def format_quantity(value: Decimal) -> str:
    """Render a quantity without trailing zeros: 10.00 -> '10', 7.50 -> '7.5'."""
    if value == value.to_integral_value():
        return str(value.to_integral_value())
    return format(value.normalize(), 'f')


def format_money(value: Decimal) -> str:
    return str(quantize_money(value))


class _BilledLine:
    """Invoice lines aggregated under one purchase-order line reference."""

    def __init__(self, key: str):
        self.key = key
        self.quantity = ZERO
        self.rates: List[Decimal] = []

    def add(self, item: LineItem):
        self.quantity += item.quantity
        if item.unit_rate not in self.rates:
            self.rates.append(item.unit_rate)


class _OrderedLine:
    """Purchase-order lines aggregated under one reference."""

    def __init__(self, line: POLine):
        self.line_ref = line.line_ref
        self.role = line.role
        self.quantity = line.quantity
        self.unit_rate = line.unit_rate


class ThreeWayMatcher:
    """
    Reconciles an invoice with its purchase order and goods receipt.

    `match()` is a pure function of the invoice snapshot and the data the
    connector returns: the same inputs always give the same verdict and the
    same discrepancy list, in the same order.
    """

    def __init__(self, connector: BaseConnector, settings: Optional[MatchingSettings] = None,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize the matcher.

        Args:
            connector: Source of purchase orders and goods receipts
            settings: Tolerance bands (defaults documented on MatchingSettings)
            clock: Time source for MatchResult.matched_at
        """
        self.connector = connector
        self.settings = settings or MatchingSettings()
        self.clock = clock
        self.tolerance = ToleranceMatcher()
        self.logger = logging.getLogger(f"{__name__}.ThreeWayMatcher")

    def match(self, invoice: Invoice) -> MatchResult:
        """
        Run the three-way match for an invoice snapshot.

        Args:
            invoice: Invoice with any pending patch already merged in

        Returns:
            MatchResult with verdict, discrepancies and a reference snapshot

        Raises:
            PORequiredError: If the invoice category mandates a PO and none is given
            MatchingDependencyError: If the PO or receipt lookup fails
        """
        discrepancies: List[str] = []
        invoice_total = self._invoice_total(invoice)
        reference = {
            'poNumber': invoice.po_number,
            'invoiceTotal': format_money(invoice_total),
            'tolerances': self.settings.to_dict()
        }

        if not invoice.po_number:
            if invoice.category in PO_MANDATORY_CATEGORIES:
                raise PORequiredError(
                    f"Invoice {invoice.id} is a {invoice.category.value} invoice and requires a purchase order reference"
                )
            if not invoice.line_items and invoice_total == ZERO:
                return self._result(invoice, [], reference)
            discrepancies.append("Missing purchase order reference")
            return self._result(invoice, discrepancies, reference)

        purchase_order, receipt = self._resolve(invoice)
        reference['purchaseOrder'] = purchase_order.to_dict() if purchase_order else None
        reference['receipt'] = receipt.to_dict() if receipt else None

        if purchase_order is None:
            discrepancies.append(f"Purchase order {invoice.po_number} not found")
            return self._result(invoice, discrepancies, reference)

        if (invoice.vendor.id and purchase_order.vendor_id
                and invoice.vendor.id != purchase_order.vendor_id):
            discrepancies.append(
                f"Vendor mismatch: invoice vendor {invoice.vendor.id}, "
                f"purchase order vendor {purchase_order.vendor_id}"
            )

        if receipt is None and invoice.category in RECEIPT_REQUIRED_CATEGORIES:
            discrepancies.append(f"No goods receipt found for purchase order {purchase_order.po_number}")

        if invoice.line_items:
            discrepancies.extend(self._compare_lines(invoice, purchase_order, receipt))
        elif invoice_total == ZERO:
            return self._result(invoice, discrepancies, reference)

        total_check = self.tolerance.match_within_band(
            purchase_order.total, invoice_total,
            self.settings.total_tolerance_absolute,
            self.settings.total_tolerance_percentage,
            field_name='total'
        )
        if not total_check.matches:
            discrepancies.append(
                f"Total mismatch: invoiced {format_money(invoice_total)}, "
                f"purchase order {format_money(purchase_order.total)}"
            )

        return self._result(invoice, discrepancies, reference)

    def _resolve(self, invoice: Invoice) -> Tuple[Optional[PurchaseOrder], Optional[GoodsReceipt]]:
        try:
            purchase_order = self.connector.get_purchase_order(invoice.po_number)
            receipt = None
            if purchase_order is not None:
                receipt = self.connector.get_receipt(purchase_order.po_number)
        except ConnectorError as e:
            self.logger.error(f"Matching lookup failed for invoice {invoice.id}: {e}")
            raise MatchingDependencyError(
                f"Could not load purchase order data for {invoice.po_number}: {e}"
            ) from e
        return purchase_order, receipt

    @staticmethod
    def _invoice_total(invoice: Invoice) -> Decimal:
        if invoice.amount is not None and (invoice.amount != ZERO or not invoice.line_items):
            return quantize_money(invoice.amount)
        return invoice.line_total

    def _compare_lines(self, invoice: Invoice, purchase_order: PurchaseOrder,
                       receipt: Optional[GoodsReceipt]) -> List[str]:
        discrepancies: List[str] = []

        ordered: "OrderedDict[str, _OrderedLine]" = OrderedDict()
        by_role: Dict[str, _OrderedLine] = {}
        for line in purchase_order.lines:
            existing = ordered.get(line.line_ref)
            if existing is None:
                existing = ordered[line.line_ref] = _OrderedLine(line)
            else:
                existing.quantity += line.quantity
            if line.role:
                by_role.setdefault(line.role.strip().lower(), existing)

        received: Dict[str, Decimal] = {}
        if receipt is not None:
            for line in receipt.lines:
                received[line.line_ref] = received.get(line.line_ref, ZERO) + line.quantity_received

        billed: "OrderedDict[str, _BilledLine]" = OrderedDict()
        for item in invoice.line_items:
            key = item.po_line_ref or item.role or item.line_id
            billed.setdefault(key, _BilledLine(key)).add(item)

        for key, group in billed.items():
            po_line = ordered.get(key) or by_role.get(key.strip().lower())
            if po_line is None:
                discrepancies.append(f"No purchase order line for {key}")
                continue

            if receipt is not None:
                expected_quantity = received.get(po_line.line_ref, ZERO)
                basis = "received"
            elif invoice.category in RECEIPT_REQUIRED_CATEGORIES:
                expected_quantity = None
                basis = None
            else:
                expected_quantity = po_line.quantity
                basis = "ordered"

            if expected_quantity is not None:
                quantity_check = self.tolerance.match_within_band(
                    expected_quantity, group.quantity,
                    self.settings.quantity_tolerance_absolute,
                    self.settings.quantity_tolerance_percentage,
                    field_name=f"quantity[{key}]"
                )
                if not quantity_check.matches:
                    discrepancies.append(
                        f"Quantity mismatch for line {key}: invoiced {format_quantity(group.quantity)}, "
                        f"{basis} {format_quantity(expected_quantity)}"
                    )

            for rate in group.rates:
                rate_check = self.tolerance.match_within_band(
                    po_line.unit_rate, rate,
                    self.settings.rate_tolerance_absolute,
                    self.settings.rate_tolerance_percentage,
                    field_name=f"rate[{key}]"
                )
                if not rate_check.matches:
                    discrepancies.append(
                        f"Rate mismatch for line {key}: invoiced {format_money(rate)}, "
                        f"approved {format_money(po_line.unit_rate)}"
                    )

        return discrepancies

    def _result(self, invoice: Invoice, discrepancies: List[str], reference: Dict) -> MatchResult:
        result = MatchResult(
            is_matched=not discrepancies,
            discrepancies=discrepancies,
            matched_at=self.clock(),
            reference=reference
        )
        self.logger.info(f"Three-way match for invoice {invoice.id}: "
                         f"{'matched' if result.is_matched else f'{len(discrepancies)} discrepancies'}")
        return result
