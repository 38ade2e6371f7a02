"""
Base connector interface for purchase-order and goods-receipt sources.

Provides the interface the three-way matcher reads through, plus common
error handling and operation logging for all connector types.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from invoice_lifecycle.models import (
    ConnectionTestResult, GoodsReceipt, InvoiceLifecycleError, PurchaseOrder
)

logger = logging.getLogger(__name__)


class ConnectorError(InvoiceLifecycleError):
    """Base exception for connector-related errors."""
    pass


class BaseConnector(ABC):
    """
    Abstract base class for purchase-order data sources.

    Lookups return None when the record does not exist and raise
    ConnectorError when the source itself could not be reached.
    """

    def __init__(self, connection_id: str):
        """
        Initialize base connector.

        Args:
            connection_id: Unique identifier for this connection
        """
        self.connection_id = connection_id
        self.logger = logging.getLogger(f"{__name__}.{connection_id}")
        self._last_connection_test: Optional[ConnectionTestResult] = None
        self._connection_healthy = True

    @abstractmethod
    def get_purchase_order(self, po_number: str) -> Optional[PurchaseOrder]:
        """
        Fetch a purchase order by its reference.

        Raises:
            ConnectorError: If the lookup could not be performed
        """
        pass

    @abstractmethod
    def get_receipt(self, po_number: str) -> Optional[GoodsReceipt]:
        """
        Fetch the goods receipt recorded against a purchase order.

        Raises:
            ConnectorError: If the lookup could not be performed
        """
        pass

    @abstractmethod
    def test_connection(self) -> ConnectionTestResult:
        """Test the connection to the data source."""
        pass

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            'connection_id': self.connection_id,
            'type': type(self).__name__,
            'healthy': self._connection_healthy
        }

    def is_healthy(self) -> bool:
        return self._connection_healthy

    def get_last_test_result(self) -> Optional[ConnectionTestResult]:
        return self._last_connection_test

    def _log_operation(self, operation: str, duration: float, success: bool,
                       details: Optional[str] = None):
        """Log connector operation with timing and status."""
        status = "SUCCESS" if success else "FAILED"
        message = f"{operation} {status} in {duration:.3f}s"

        if details:
            message += f" - {details}"

        if success:
            self.logger.info(message)
        else:
            self.logger.error(message)

    def _handle_error(self, operation: str, error: Exception) -> ConnectorError:
        """
        Log a connector failure and wrap it.

        Returns:
            ConnectorError with appropriate message
        """
        error_msg = f"{operation} failed for connection '{self.connection_id}': {str(error)}"
        self.logger.error(error_msg, exc_info=True)
        self._connection_healthy = False
        return ConnectorError(error_msg)
