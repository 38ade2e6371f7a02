"""
Unit tests for API connector with mock HTTP responses.

Tests API connector functionality including authentication headers, rate
limiting, not-found handling and error wrapping.
"""

import threading
from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from invoice_lifecycle.connectors import APIConnector, ConnectorError, RateLimiter
from invoice_lifecycle.models import APIConnectionConfig, AuthenticationType


PO_PAYLOAD = {
    'poNumber': 'PO-1',
    'vendorId': 'V-1',
    'total': '1000.00',
    'lines': [{'lineRef': 'L1', 'role': 'Developer', 'quantity': '10', 'unitRate': '100'}]
}


def mock_response(status_code=200, payload=None, text=''):
    response = Mock()
    response.status_code = status_code
    response.content = b'{}' if payload is not None else b''
    response.json.return_value = payload
    response.text = text
    return response


class TestRateLimiter:
    """Test cases for RateLimiter class."""

    def test_rate_limiter_creation(self):
        """Test creating rate limiter with specified rate."""
        limiter = RateLimiter(rate_limit=60)

        assert limiter.rate_limit == 60
        assert limiter.tokens == 60
        assert limiter.acquire() is True

    def test_rate_limiter_token_consumption(self):
        """Test that tokens are consumed on acquire."""
        limiter = RateLimiter(rate_limit=2)

        assert limiter.acquire() is True
        assert limiter.acquire() is True
        assert limiter.acquire() is False

    def test_rate_limiter_token_replenishment(self):
        """Test that tokens are replenished over time."""
        limiter = RateLimiter(rate_limit=60)
        for _ in range(60):
            limiter.acquire()
        assert limiter.acquire() is False

        limiter.last_update -= 1.0
        assert limiter.acquire() is True

    def test_shared_between_threads(self):
        """Test concurrent workers never draw more tokens than the bucket holds."""
        limiter = RateLimiter(rate_limit=50)
        granted = []

        def worker():
            for _ in range(20):
                if limiter.acquire():
                    granted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # 160 attempts against a 50-token bucket; refill during the run is well under one token
        assert 50 <= len(granted) <= 51

    def test_wait_time_calculation(self):
        limiter = RateLimiter(rate_limit=60)
        assert limiter.wait_time() == 0.0
        for _ in range(60):
            limiter.acquire()
        assert 0 < limiter.wait_time() <= 1.0


class TestAPIConnector:
    """Test cases for APIConnector class."""

    def setup_method(self):
        """Setup test environment."""
        self.config = APIConnectionConfig(
            connection_id='erp',
            base_url='https://erp.example.com/api/',
            api_key='test-api-key-123456',
            timeout=15,
            rate_limit=100
        )
        self.session = Mock()
        self.connector = APIConnector(self.config, session=self.session)

    def test_get_purchase_order(self):
        """Test a PO is fetched with API-key headers and parsed."""
        self.session.request.return_value = mock_response(payload=PO_PAYLOAD)

        po = self.connector.get_purchase_order('PO-1')

        assert po.po_number == 'PO-1'
        assert po.total == Decimal('1000.00')
        assert po.lines[0].unit_rate == Decimal('100')
        args, kwargs = self.session.request.call_args
        assert args == ('GET', 'https://erp.example.com/api/purchase-orders/PO-1')
        assert kwargs['headers']['X-API-Key'] == 'test-api-key-123456'
        assert kwargs['timeout'] == 15

    def test_bearer_token_and_additional_headers(self):
        self.config.authentication_type = AuthenticationType.BEARER_TOKEN
        self.config.additional_headers = {'X-Tenant': 'acme'}
        self.session.request.return_value = mock_response(payload=PO_PAYLOAD)

        self.connector.get_purchase_order('PO-1')

        headers = self.session.request.call_args[1]['headers']
        assert headers['Authorization'] == 'Bearer test-api-key-123456'
        assert headers['X-Tenant'] == 'acme'
        assert 'X-API-Key' not in headers

    def test_po_number_is_url_quoted(self):
        self.session.request.return_value = mock_response(payload=PO_PAYLOAD)
        self.connector.get_purchase_order('PO/1 A')
        assert self.session.request.call_args[0][1].endswith('/purchase-orders/PO%2F1%20A')

    def test_missing_records_return_none(self):
        """Test a 404 is a missing record, not a failure."""
        self.session.request.return_value = mock_response(status_code=404, text='not found')

        assert self.connector.get_purchase_order('PO-404') is None
        assert self.connector.get_receipt('PO-404') is None
        assert self.connector.is_healthy()

    def test_get_receipt(self):
        self.session.request.return_value = mock_response(payload={
            'receiptId': 'GR-1', 'poNumber': 'PO-1',
            'lines': [{'lineRef': 'L1', 'quantityReceived': '8'}]
        })

        receipt = self.connector.get_receipt('PO-1')

        assert receipt.receipt_id == 'GR-1'
        assert receipt.lines[0].quantity_received == Decimal('8')
        assert self.session.request.call_args[0][1].endswith('/purchase-orders/PO-1/receipt')

    def test_server_error_raises(self):
        self.session.request.return_value = mock_response(status_code=500, text='boom')

        with pytest.raises(ConnectorError, match='HTTP 500'):
            self.connector.get_purchase_order('PO-1')
        assert not self.connector.is_healthy()

    def test_network_failure_raises(self):
        self.session.request.side_effect = requests.ConnectionError('connection refused')

        with pytest.raises(ConnectorError, match='connection refused'):
            self.connector.get_purchase_order('PO-1')

    def test_malformed_payload_raises(self):
        """Test a payload missing required fields is a connector failure."""
        self.session.request.return_value = mock_response(payload={'vendorId': 'V-1'})
        with pytest.raises(ConnectorError, match='Malformed purchase order'):
            self.connector.get_purchase_order('PO-1')

        self.session.request.return_value = mock_response(payload=['not', 'a', 'record'])
        with pytest.raises(ConnectorError, match='Unexpected payload'):
            self.connector.get_purchase_order('PO-1')

    def test_wrongly_typed_payload_raises(self):
        """Test payloads with the wrong shape inside are connector failures, not crashes."""
        self.session.request.return_value = mock_response(payload={**PO_PAYLOAD, 'lines': [None]})
        with pytest.raises(ConnectorError, match='Malformed purchase order'):
            self.connector.get_purchase_order('PO-1')

        self.session.request.return_value = mock_response(payload={
            'receiptId': 'GR-1', 'poNumber': 'PO-1', 'lines': 5
        })
        with pytest.raises(ConnectorError, match='Malformed goods receipt'):
            self.connector.get_receipt('PO-1')

    def test_invalid_json_raises(self):
        response = mock_response(payload={})
        response.json.side_effect = ValueError('Expecting value')
        self.session.request.return_value = response

        with pytest.raises(ConnectorError):
            self.connector.get_purchase_order('PO-1')

    def test_rate_limited_requests_fail_fast(self):
        self.connector.rate_limiter = RateLimiter(rate_limit=1)
        self.session.request.return_value = mock_response(payload=PO_PAYLOAD)

        self.connector.get_purchase_order('PO-1')
        with pytest.raises(ConnectorError, match='Rate limit exceeded'):
            self.connector.get_purchase_order('PO-1')
        assert self.session.request.call_count == 1

    def test_connection_success(self):
        self.session.request.return_value = mock_response(payload={'status': 'ok'})

        result = self.connector.test_connection()

        assert result.success is True
        assert result.connection_id == 'erp'
        assert result.additional_info['status_code'] == 200
        assert self.connector.get_last_test_result() is result

    def test_connection_failure(self):
        self.session.request.side_effect = requests.Timeout('timed out')

        result = self.connector.test_connection()

        assert result.success is False
        assert 'timed out' in result.error_message
        assert not self.connector.is_healthy()

    def test_connection_info_excludes_api_key(self):
        info = self.connector.get_connection_info()

        assert info['connection_id'] == 'erp'
        assert info['type'] == 'APIConnector'
        assert info['authentication_type'] == 'api_key'
        assert 'test-api-key-123456' not in str(info)
