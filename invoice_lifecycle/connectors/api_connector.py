"""
REST API connector for purchase-order and goods-receipt data.

Provides HTTP access to an ERP/procurement API with API-key or bearer-token
authentication and client-side rate limiting. Lookups are not retried: a
failure is reported to the caller, which decides what to do with it.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import requests

from invoice_lifecycle.models import (
    APIConnectionConfig, AuthenticationType, ConnectionTestResult,
    GoodsReceipt, PurchaseOrder, ValidationError
)
from .base_connector import BaseConnector, ConnectorError

import logging
logger = logging.getLogger(__name__)


@dataclass
class APIResponse:
    """Response from API connector operations."""
    success: bool
    status_code: int
    data: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]] = None
    error_message: Optional[str] = None
    response_time: float = 0.0


class RateLimiter:
    """Simple token bucket rate limiter, safe to share between worker threads."""

    def __init__(self, rate_limit: int):
        """
        Initialize rate limiter.

        Args:
            rate_limit: Maximum requests per minute
        """
        self.rate_limit = rate_limit
        self.tokens = float(rate_limit)
        self.last_update = time.time()
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        """
        Try to acquire a token for making a request.

        Returns:
            True if token acquired, False if rate limited
        """
        with self._lock:
            now = time.time()
            time_passed = now - self.last_update
            self.last_update = now

            self.tokens = min(self.rate_limit, self.tokens + time_passed * (self.rate_limit / 60.0))

            if self.tokens >= 1:
                self.tokens -= 1
                return True
            return False

    def wait_time(self) -> float:
        """Get time to wait before next request is allowed."""
        with self._lock:
            tokens = self.tokens
        if tokens >= 1:
            return 0.0
        return (1 - tokens) * (60.0 / self.rate_limit)


class APIConnector(BaseConnector):
    """
    Purchase-order source backed by a REST API.

    Endpoints:
        GET {base_url}/purchase-orders/{po_number}
        GET {base_url}/purchase-orders/{po_number}/receipt
        GET {base_url}/health
    """

    def __init__(self, config: APIConnectionConfig, session: Optional[requests.Session] = None):
        """
        Initialize API connector.

        Args:
            config: API connection configuration
            session: Optional requests session (shared pools, tests)
        """
        super().__init__(config.connection_id)
        self.config = config
        self.rate_limiter = RateLimiter(config.rate_limit)
        self.session = session or requests.Session()

        self.logger.info(f"API connector initialized for {config.base_url}")

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.config.authentication_type == AuthenticationType.BEARER_TOKEN:
            headers['Authorization'] = f"Bearer {self.config.api_key}"
        else:
            headers['X-API-Key'] = self.config.api_key
        if self.config.additional_headers:
            headers.update(self.config.additional_headers)
        return headers

    def _url(self, *parts: str) -> str:
        path = '/'.join(quote(part, safe='') for part in parts)
        return f"{self.config.base_url.rstrip('/')}/{path}"

    def _make_request(self, method: str, url: str, **kwargs) -> APIResponse:
        """
        Perform one HTTP request.

        Raises:
            ConnectorError: If rate limited or the request could not be sent
        """
        if not self.rate_limiter.acquire():
            raise ConnectorError(
                f"Rate limit exceeded for connection '{self.connection_id}', "
                f"retry in {self.rate_limiter.wait_time():.1f}s"
            )

        start_time = time.time()
        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.config.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise self._handle_error(f"{method} {url}", e)

        duration = time.time() - start_time
        success = response.status_code < 400
        data = None
        if success and response.content:
            try:
                data = response.json()
            except ValueError as e:
                raise self._handle_error(f"Decoding response from {url}", e)

        self._log_operation(f"{method} {url}", duration, success or response.status_code == 404,
                            f"Status: {response.status_code}")
        return APIResponse(
            success=success,
            status_code=response.status_code,
            data=data,
            error_message=None if success else response.text[:200],
            response_time=duration
        )

    def _get_record(self, url: str) -> Optional[Dict[str, Any]]:
        response = self._make_request('GET', url)
        if response.status_code == 404:
            return None
        if not response.success:
            self._connection_healthy = False
            raise ConnectorError(f"HTTP {response.status_code} from {url}: {response.error_message}")
        if not isinstance(response.data, dict):
            raise ConnectorError(f"Unexpected payload from {url}")
        return response.data

    def get_purchase_order(self, po_number: str) -> Optional[PurchaseOrder]:
        data = self._get_record(self._url('purchase-orders', po_number))
        if data is None:
            return None
        try:
            return PurchaseOrder.from_dict(data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise ConnectorError(f"Malformed purchase order {po_number}: {e}")

    def get_receipt(self, po_number: str) -> Optional[GoodsReceipt]:
        data = self._get_record(self._url('purchase-orders', po_number, 'receipt'))
        if data is None:
            return None
        try:
            return GoodsReceipt.from_dict(data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise ConnectorError(f"Malformed goods receipt for {po_number}: {e}")

    def test_connection(self) -> ConnectionTestResult:
        """
        Test the API connection.

        Returns:
            ConnectionTestResult with test status and details
        """
        start_time = time.time()
        try:
            response = self._make_request('GET', self._url('health'))
            result = ConnectionTestResult(
                success=response.success,
                connection_id=self.connection_id,
                response_time=response.response_time,
                error_message=None if response.success else f"HTTP {response.status_code}: {response.error_message}",
                additional_info={'status_code': response.status_code, 'base_url': self.config.base_url}
            )
        except ConnectorError as e:
            result = ConnectionTestResult(
                success=False,
                connection_id=self.connection_id,
                response_time=time.time() - start_time,
                error_message=str(e),
                additional_info={'base_url': self.config.base_url}
            )

        self._last_connection_test = result
        self._connection_healthy = result.success
        return result

    def get_connection_info(self) -> Dict[str, Any]:
        info = super().get_connection_info()
        info.update({
            'base_url': self.config.base_url,
            'authentication_type': self.config.authentication_type.value,
            'timeout': self.config.timeout,
            'rate_limit': self.config.rate_limit
        })
        return info
