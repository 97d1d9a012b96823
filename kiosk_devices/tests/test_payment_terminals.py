"""
Unit tests for the card, QR and cash payment terminals.
"""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from kiosk_devices.core.exceptions import InvalidArgumentError
from kiosk_devices.core.value_objects import ErrorCode, PaymentRequest, TerminalStatus
from kiosk_devices.domain.payment_terminals import (
    CardPaymentTerminal,
    CashPaymentTerminal,
    QRPaymentTerminal,
)
from kiosk_devices.infrastructure.settings import QRPaySettings

from conftest import CLOCK_SLACK, FakeTransport


def card_request(amount=5000, order_id="ORDER1", method="card"):
    return PaymentRequest.create(amount=amount, order_id=order_id, method=method)


# =============================================================================
# Card Terminal Tests
# =============================================================================


class TestCardPaymentTerminal:
    """Tests for CardPaymentTerminal over a fake serial line."""

    @staticmethod
    def make_terminal(replies=None, **kwargs):
        replies = replies or {}
        transport = FakeTransport(responder=lambda data: replies.get(data, []))
        terminal = CardPaymentTerminal(
            port="/dev/card",
            transport_factory=lambda port, baudrate: transport,
            **kwargs,
        )
        return terminal, transport

    @pytest.mark.asyncio
    async def test_successful_payment(self):
        terminal, transport = self.make_terminal(
            {b"PAY,5000,ORDER1,CARD\r\n": ["SUCCESS,TX1,AP1,RCPT1"]}
        )
        assert await terminal.connect() is True

        response = await terminal.process_payment(card_request())

        assert transport.written == [b"PAY,5000,ORDER1,CARD\r\n"]
        assert response.success is True
        assert response.transaction_id == "TX1"
        assert response.approval_number == "AP1"
        assert response.receipt_data == "RCPT1"

    @pytest.mark.asyncio
    async def test_declined_payment(self):
        terminal, _ = self.make_terminal(
            {b"PAY,5000,ORDER1,CARD\r\n": ["FAIL,Insufficient funds,INSUFFICIENT_FUNDS"]}
        )
        await terminal.connect()

        response = await terminal.process_payment(card_request())

        assert response.success is False
        assert response.error == "Insufficient funds"
        assert response.error_code == "INSUFFICIENT_FUNDS"

    @pytest.mark.parametrize(
        "reply,error,code",
        [
            ("FAIL", "결제 실패", "UNKNOWN_ERROR"),
            ("FAIL,Card error", "Card error", "UNKNOWN_ERROR"),
            ("SUCCESS", "결제 실패", "UNKNOWN_ERROR"),
        ],
    )
    def test_parse_incomplete_reply(self, reply, error, code):
        response = CardPaymentTerminal.parse_response(reply)
        assert response.success is False
        assert response.error == error
        assert response.error_code == code

    def test_parse_receipt_with_commas(self):
        response = CardPaymentTerminal.parse_response("SUCCESS,TX9,AP9,ITEM A,1000")
        assert response.receipt_data == "ITEM A,1000"

    @pytest.mark.asyncio
    async def test_timeout_reports_unknown_outcome(self):
        terminal, transport = self.make_terminal(payment_timeout=0.05)
        await terminal.connect()

        response = await terminal.process_payment(card_request())

        assert response.success is False
        assert response.error_code == ErrorCode.PAYMENT_PROCESSING_ERROR.value
        assert response.details["outcome"] == "unknown"
        assert transport.written == [b"PAY,5000,ORDER1,CARD\r\n"]

    @pytest.mark.asyncio
    async def test_timeout_waits_full_deadline(self):
        terminal, _ = self.make_terminal(payment_timeout=0.1)
        await terminal.connect()

        started = time.monotonic()
        response = await terminal.process_payment(card_request())

        assert time.monotonic() - started >= 0.1 - CLOCK_SLACK
        assert response.details["cause"] == ErrorCode.TIMEOUT.value

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_response(self):
        terminal, transport = self.make_terminal()
        transport.write = AsyncMock(side_effect=RuntimeError("driver bug"))
        await terminal.connect()

        payment = await terminal.process_payment(card_request())
        cancel = await terminal.cancel_payment("TX1")

        assert payment.error_code == ErrorCode.PAYMENT_PROCESSING_ERROR.value
        assert payment.error == "driver bug"
        assert cancel.error_code == ErrorCode.CANCEL_PROCESSING_ERROR.value

    @pytest.mark.parametrize("order_id", ["주문-1", "A,1\r\nCANCEL,TX0", "A\n", ""])
    def test_request_with_unsafe_order_id_is_refused(self, order_id):
        with pytest.raises(InvalidArgumentError):
            card_request(order_id=order_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("transaction_id", ["TX1\r\nPAY,1,X,CARD", "TX,1", "거래1", ""])
    async def test_cancel_rejects_unsafe_transaction_id(self, transaction_id):
        terminal, transport = self.make_terminal()
        await terminal.connect()

        response = await terminal.cancel_payment(transaction_id)

        assert response.error_code == ErrorCode.INVALID_REQUEST.value
        assert transport.written == []

    @pytest.mark.asyncio
    async def test_not_connected(self):
        terminal, transport = self.make_terminal()

        response = await terminal.process_payment(card_request())

        assert response.error_code == ErrorCode.TERMINAL_NOT_CONNECTED.value
        assert transport.written == []

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        transport = FakeTransport(fail_open=True)
        terminal = CardPaymentTerminal(transport_factory=lambda p, b: transport)
        assert await terminal.connect() is False
        assert terminal.is_connected is False

    @pytest.mark.asyncio
    async def test_line_lost_during_payment(self):
        terminal, transport = self.make_terminal()
        await terminal.connect()

        task = asyncio.create_task(terminal.process_payment(card_request()))
        await asyncio.sleep(0)
        transport.drop(OSError("unplugged"))
        response = await task

        assert response.error_code == ErrorCode.PAYMENT_PROCESSING_ERROR.value
        assert terminal.is_connected is False

    @pytest.mark.asyncio
    async def test_requests_are_serialized(self):
        """A second payment waits until the first reply has arrived."""
        terminal, transport = self.make_terminal(
            {
                b"PAY,1000,A,CARD\r\n": ["SUCCESS,TXA,APA,R"],
                b"PAY,2000,B,CARD\r\n": ["SUCCESS,TXB,APB,R"],
            }
        )
        await terminal.connect()

        first, second = await asyncio.gather(
            terminal.process_payment(card_request(1000, "A")),
            terminal.process_payment(card_request(2000, "B")),
        )

        assert (first.transaction_id, second.transaction_id) == ("TXA", "TXB")

    @pytest.mark.asyncio
    async def test_cancel(self):
        terminal, transport = self.make_terminal({b"CANCEL,TX1\r\n": ["SUCCESS,TX1,,"]})
        await terminal.connect()

        response = await terminal.cancel_payment("TX1")

        assert response.success is True
        assert response.transaction_id == "TX1"
        assert response.approval_number is None

    @pytest.mark.asyncio
    async def test_cancel_timeout(self):
        terminal, _ = self.make_terminal(payment_timeout=0.05)
        await terminal.connect()

        response = await terminal.cancel_payment("TX1")

        assert response.error_code == ErrorCode.CANCEL_PROCESSING_ERROR.value

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply,expected",
        [
            ("READY", TerminalStatus.CONNECTED),
            ("BUSY", TerminalStatus.BUSY),
            ("FAULT", TerminalStatus.ERROR),
        ],
    )
    async def test_status(self, reply, expected):
        terminal, _ = self.make_terminal({b"STATUS\r\n": [reply]})
        await terminal.connect()
        assert await terminal.get_status() is expected

    @pytest.mark.asyncio
    async def test_status_timeout_and_disconnected(self):
        terminal, _ = self.make_terminal(status_timeout=0.05)
        assert await terminal.get_status() is TerminalStatus.DISCONNECTED
        await terminal.connect()
        assert await terminal.get_status() is TerminalStatus.ERROR

    @pytest.mark.asyncio
    async def test_disconnect(self):
        terminal, transport = self.make_terminal()
        await terminal.connect()
        await terminal.disconnect()
        await terminal.disconnect()
        assert terminal.is_connected is False
        assert transport.close_count == 1


# =============================================================================
# QR Terminal Tests
# =============================================================================


QR_SETTINGS = QRPaySettings(base_url="https://qr.test", api_key="KEY", timeout=1.0)


def qr_terminal(handler):
    client = httpx.AsyncClient(base_url=QR_SETTINGS.base_url, transport=httpx.MockTransport(handler))
    return QRPaymentTerminal(settings=QR_SETTINGS, client=client)


class TestQRPaymentTerminal:
    """Tests for QRPaymentTerminal against a mocked HTTP API."""

    @pytest.mark.asyncio
    async def test_successful_payment(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"transactionId": "QR1", "approvalNumber": "A1"})

        response = await qr_terminal(handler).process_payment(card_request(method="qr"))

        assert response.success is True
        assert response.transaction_id == "QR1"
        assert response.approval_number == "A1"
        assert seen == {
            "path": "/payments",
            "auth": "Bearer KEY",
            "body": {"amount": 5000, "currency": "KRW", "orderId": "ORDER1", "method": "qr"},
        }

    @pytest.mark.asyncio
    async def test_api_rejection(self):
        def handler(request):
            return httpx.Response(402, json={"message": "Expired QR", "errorCode": "QR_EXPIRED"})

        response = await qr_terminal(handler).process_payment(card_request(method="qr"))

        assert response.success is False
        assert response.error == "Expired QR"
        assert response.error_code == "QR_EXPIRED"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        response = await qr_terminal(handler).process_payment(card_request(method="qr"))

        assert response.error_code == ErrorCode.API_ERROR.value

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        terminal = qr_terminal(handler)
        response = await terminal.process_payment(card_request(method="qr"))
        cancel = await terminal.cancel_payment("QR1")

        assert response.error_code == ErrorCode.NETWORK_ERROR.value
        assert response.error == "connection refused"
        assert cancel.error_code == ErrorCode.NETWORK_ERROR.value

    @pytest.mark.asyncio
    async def test_cancel(self):
        def handler(request):
            assert request.url.path == "/payments/QR1/cancel"
            return httpx.Response(200, json={"transactionId": "QR1"})

        response = await qr_terminal(handler).cancel_payment("QR1")

        assert response.success is True
        assert response.transaction_id == "QR1"

    @pytest.mark.asyncio
    async def test_connect_and_status(self):
        def healthy(request):
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "ok"})

        terminal = qr_terminal(healthy)
        assert await terminal.connect() is True
        assert terminal.is_connected is True
        assert await terminal.get_status() is TerminalStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_status_mapping(self):
        def unhealthy(request):
            return httpx.Response(503)

        def unreachable(request):
            raise httpx.ConnectError("refused", request=request)

        assert await qr_terminal(unhealthy).get_status() is TerminalStatus.ERROR
        assert await qr_terminal(unreachable).get_status() is TerminalStatus.DISCONNECTED
        assert await qr_terminal(unreachable).connect() is False


# =============================================================================
# Cash Terminal Tests
# =============================================================================


@pytest.fixture
def cash_handler():
    handler = MagicMock()
    handler.get_status = AsyncMock(return_value="ready")
    handler.wait_for_cash = AsyncMock(return_value={"success": True, "received_amount": 6000})
    handler.dispense_change = AsyncMock(return_value={})
    return handler


class TestCashPaymentTerminal:
    """Tests for CashPaymentTerminal."""

    @pytest.mark.asyncio
    async def test_payment_with_change(self, cash_handler):
        terminal = CashPaymentTerminal(cash_handler)
        assert await terminal.connect() is True

        response = await terminal.process_payment(card_request(method="cash"))

        assert response.success is True
        assert response.transaction_id.startswith("CASH_")
        assert "거스름돈: 1000원" in response.receipt_data
        assert response.receipt_data == "현금결제: 5000원, 받은금액: 6000원, 거스름돈: 1000원"
        cash_handler.wait_for_cash.assert_awaited_once_with(5000, 60000)
        cash_handler.dispense_change.assert_awaited_once_with(1000)

    @pytest.mark.asyncio
    async def test_exact_amount_dispenses_nothing(self, cash_handler):
        cash_handler.wait_for_cash.return_value = {"success": True, "received_amount": 5000}
        terminal = CashPaymentTerminal(cash_handler)
        await terminal.connect()

        response = await terminal.process_payment(card_request(method="cash"))

        assert response.success is True
        assert "거스름돈: 0원" in response.receipt_data
        cash_handler.dispense_change.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handler_failure_code(self, cash_handler):
        cash_handler.wait_for_cash.return_value = {
            "success": False,
            "error": "Customer left",
            "error_code": "TIMEOUT",
        }
        terminal = CashPaymentTerminal(cash_handler)
        await terminal.connect()

        response = await terminal.process_payment(card_request(method="cash"))

        assert response.error_code == "TIMEOUT"
        assert response.error == "Customer left"

    @pytest.mark.asyncio
    async def test_handler_exception(self, cash_handler):
        cash_handler.dispense_change.side_effect = RuntimeError("hopper jam")
        terminal = CashPaymentTerminal(cash_handler)
        await terminal.connect()

        response = await terminal.process_payment(card_request(method="cash"))

        assert response.error_code == ErrorCode.CASH_PROCESSING_ERROR.value
        assert response.error == "hopper jam"

    @pytest.mark.asyncio
    async def test_not_connected(self, cash_handler):
        cash_handler.get_status.return_value = "busy"
        terminal = CashPaymentTerminal(cash_handler)
        assert await terminal.connect() is False

        response = await terminal.process_payment(card_request(method="cash"))

        assert response.error_code == ErrorCode.CASH_HANDLER_NOT_CONNECTED.value
        cash_handler.wait_for_cash.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_handler(self):
        terminal = CashPaymentTerminal(None)
        assert await terminal.connect() is False
        assert await terminal.get_status() is TerminalStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_cancel_not_supported(self, cash_handler):
        terminal = CashPaymentTerminal(cash_handler)
        await terminal.connect()

        response = await terminal.cancel_payment("CASH_1")

        assert response.success is False
        assert response.error_code == ErrorCode.CASH_CANCEL_NOT_SUPPORTED.value

    @pytest.mark.asyncio
    async def test_status(self, cash_handler):
        terminal = CashPaymentTerminal(cash_handler)
        await terminal.connect()
        assert await terminal.get_status() is TerminalStatus.CONNECTED

        cash_handler.get_status.return_value = "busy"
        assert await terminal.get_status() is TerminalStatus.BUSY
