"""
In-process purchase-order source, used for seeding and tests.
"""

import threading
from typing import Dict, Iterable, Optional

from invoice_lifecycle.models import ConnectionTestResult, GoodsReceipt, PurchaseOrder
from .base_connector import BaseConnector


class InMemoryConnector(BaseConnector):
    """Serves purchase orders and receipts from dictionaries."""

    def __init__(self, purchase_orders: Iterable[PurchaseOrder] = (),
                 receipts: Iterable[GoodsReceipt] = (), connection_id: str = "in_memory"):
        super().__init__(connection_id)
        self._lock = threading.Lock()
        self._purchase_orders: Dict[str, PurchaseOrder] = {po.po_number: po for po in purchase_orders}
        self._receipts: Dict[str, GoodsReceipt] = {r.po_number: r for r in receipts}
        self.lookup_count = 0

    def add_purchase_order(self, po: PurchaseOrder):
        with self._lock:
            self._purchase_orders[po.po_number] = po

    def add_receipt(self, receipt: GoodsReceipt):
        with self._lock:
            self._receipts[receipt.po_number] = receipt

    def get_purchase_order(self, po_number: str) -> Optional[PurchaseOrder]:
        with self._lock:
            self.lookup_count += 1
            return self._purchase_orders.get(po_number)

    def get_receipt(self, po_number: str) -> Optional[GoodsReceipt]:
        with self._lock:
            return self._receipts.get(po_number)

    def test_connection(self) -> ConnectionTestResult:
        result = ConnectionTestResult(
            success=True,
            connection_id=self.connection_id,
            response_time=0.0,
            additional_info={
                'purchase_orders': len(self._purchase_orders),
                'receipts': len(self._receipts)
            }
        )
        self._last_connection_test = result
        return result
