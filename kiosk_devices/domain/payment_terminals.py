"""
Payment Terminals - Uniform contract over heterogeneous transports.

Three independent implementations of PaymentTerminal:

- CardPaymentTerminal: CSV over a dedicated serial line.
- QRPaymentTerminal: stateless HTTP API with bearer authentication.
- CashPaymentTerminal: delegates to an external cash handler.

None of them raise from process_payment or cancel_payment; failures are
reported as PaymentResponse(success=False, error_code=...).
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

import httpx

from ..configs import (
    CARD_PAYMENT_TIMEOUT_S,
    CARD_STATUS_TIMEOUT_S,
    CARD_TERMINAL_DELIMITER,
    CASH_WAIT_TIMEOUT_MS,
)
from ..core.exceptions import (
    DeviceConnectionError,
    DeviceError,
    InvalidArgumentError,
    NetworkError,
    ResponseTimeoutError,
)
from ..core.interfaces import CashHandler, LineTransport, PaymentTerminal
from ..core.value_objects import (
    ErrorCode,
    PaymentMethod,
    PaymentRequest,
    PaymentResponse,
    TerminalStatus,
    validate_identifier,
)
from ..infrastructure.sanitizer import hash_data, sanitize
from ..infrastructure.settings import QRPaySettings, get_settings
from ..loggers import logger
from ..protocol.correlator import CommandCorrelator, any_message
from ..protocol.transport import SerialLineTransport


CARD_TERMINATOR = CARD_TERMINAL_DELIMITER.decode("ascii")

TransportFactory = Callable[[str, int], LineTransport]


def _card_transport(port: str, baudrate: int) -> LineTransport:
    return SerialLineTransport(
        port=port,
        baudrate=baudrate,
        delimiter=CARD_TERMINAL_DELIMITER,
        name="card_terminal",
    )


# =============================================================================
# Card Terminal (serial)
# =============================================================================


class CardPaymentTerminal(PaymentTerminal):
    """
    Card reader on a dedicated serial line.

    The protocol has no reply tag, so exactly one request may be
    outstanding: every exchange holds the terminal lock and the next
    complete line is taken as the reply.
    """

    def __init__(
        self,
        port: Optional[str] = None,
        baudrate: Optional[int] = None,
        transport_factory: Optional[TransportFactory] = None,
        payment_timeout: float = CARD_PAYMENT_TIMEOUT_S,
        status_timeout: float = CARD_STATUS_TIMEOUT_S,
    ) -> None:
        """
        Initialize the card terminal.

        Args:
            port: Serial port path (settings when omitted).
            baudrate: Serial baudrate (settings when omitted).
            transport_factory: Builds the transport for a port and baudrate.
            payment_timeout: Seconds to wait for a PAY/CANCEL reply.
            status_timeout: Seconds to wait for a STATUS reply.
        """
        settings = get_settings().card_terminal
        self._port = port or settings.port
        self._baudrate = baudrate or settings.baudrate
        self._transport_factory = transport_factory or _card_transport
        self._payment_timeout = payment_timeout
        self._status_timeout = status_timeout

        self._transport: Optional[LineTransport] = None
        self._correlator: Optional[CommandCorrelator] = None
        self._lock = asyncio.Lock()
        self._connected = False

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.CARD

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Open the card terminal line."""
        if self._connected:
            return True

        transport = self._transport_factory(self._port, self._baudrate)
        self._correlator = CommandCorrelator(transport.write, name="card_terminal")
        transport.set_handlers(on_message=self._on_message, on_close=self._on_close)
        try:
            await transport.open()
        except DeviceConnectionError as e:
            logger.error(f"Card terminal connection failed: {e}")
            self._correlator = None
            return False

        self._transport = transport
        self._connected = True
        logger.info(f"Card terminal connected on {self._port}")
        return True

    async def disconnect(self) -> None:
        """Close the card terminal line."""
        transport, self._transport = self._transport, None
        self._connected = False
        if self._correlator:
            self._correlator.reject_all()
            self._correlator = None
        if transport is None:
            return
        try:
            await transport.close()
        except Exception as e:
            logger.error(f"Card terminal disconnect error: {e}")
        logger.info("Card terminal disconnected")

    async def process_payment(self, request: PaymentRequest) -> PaymentResponse:
        """Send PAY,<amount>,<orderId>,<METHOD> and parse the reply."""
        if not self._connected:
            return self._not_connected()

        command = self.build_payment_command(request)
        logger.info(f"Card payment requested: order={request.order_id}, amount={request.amount}")
        try:
            reply = await self._exchange(command, self._payment_timeout)
        except Exception as e:
            return self._exchange_failed(e, ErrorCode.PAYMENT_PROCESSING_ERROR, request.order_id)

        response = self.parse_response(reply)
        self._log_result("Payment", request.order_id, response)
        return response

    async def cancel_payment(self, transaction_id: str) -> PaymentResponse:
        """Send CANCEL,<txId> and parse the reply."""
        if not self._connected:
            return self._not_connected()

        try:
            validate_identifier(transaction_id, "Transaction id")
        except InvalidArgumentError as e:
            logger.warning(f"Card cancel rejected: {e.message}")
            return PaymentResponse.failed(ErrorCode.INVALID_REQUEST, error=e.message)

        logger.info(f"Card payment cancel requested: transaction={transaction_id}")
        try:
            reply = await self._exchange(self.build_cancel_command(transaction_id), self._payment_timeout)
        except Exception as e:
            return self._exchange_failed(e, ErrorCode.CANCEL_PROCESSING_ERROR, transaction_id)

        response = self.parse_response(reply)
        self._log_result("Cancel", transaction_id, response)
        return response

    async def get_status(self) -> TerminalStatus:
        """Probe with STATUS: READY -> connected, BUSY -> busy."""
        if not self._connected:
            return TerminalStatus.DISCONNECTED

        try:
            reply = await self._exchange("STATUS", self._status_timeout)
        except DeviceError as e:
            logger.warning(f"Card terminal status probe failed: {e}")
            return TerminalStatus.ERROR

        if "READY" in reply:
            return TerminalStatus.CONNECTED
        if "BUSY" in reply:
            return TerminalStatus.BUSY
        return TerminalStatus.ERROR

    # =========================================================================
    # Wire Format
    # =========================================================================

    @staticmethod
    def build_payment_command(request: PaymentRequest) -> str:
        return f"PAY,{request.amount},{request.order_id},{request.method.value.upper()}"

    @staticmethod
    def build_cancel_command(transaction_id: str) -> str:
        return f"CANCEL,{transaction_id}"

    @staticmethod
    def parse_response(reply: str) -> PaymentResponse:
        """
        Parse a CSV reply.

        SUCCESS,<txId>,<approval>,<receipt>  -> approved
        <code>,<message>,<errorCode>         -> failed
        """
        parts = reply.strip().split(",")
        if parts[0] == "SUCCESS" and len(parts) > 1 and parts[1]:
            return PaymentResponse.approved(
                transaction_id=parts[1],
                approval_number=parts[2] if len(parts) > 2 and parts[2] else None,
                receipt_data=",".join(parts[3:]) or None,
            )
        return PaymentResponse.failed(
            error_code=parts[2] if len(parts) > 2 and parts[2] else ErrorCode.UNKNOWN_ERROR,
            error=parts[1] if len(parts) > 1 and parts[1] else "결제 실패",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _exchange(self, command: str, timeout: float) -> str:
        async with self._lock:
            if self._correlator is None:
                raise DeviceError("Card terminal line is closed", device_name="card_terminal")
            return await self._correlator.send(
                command,
                predicate=any_message,
                timeout=timeout,
                terminator=CARD_TERMINATOR,
            )

    def _exchange_failed(
        self,
        error: Exception,
        error_code: ErrorCode,
        reference: str,
    ) -> PaymentResponse:
        if isinstance(error, ResponseTimeoutError):
            # The reader may still complete the physical operation
            logger.error(
                f"Card terminal timed out for {reference}; outcome unknown, "
                f"operator check required"
            )
            return PaymentResponse.failed(
                error_code=error_code,
                error=error.message,
                outcome="unknown",
                cause=ErrorCode.TIMEOUT.value,
            )
        if isinstance(error, DeviceError):
            logger.error(f"Card terminal exchange failed for {reference}: {error}")
            return PaymentResponse.failed(
                error_code=error_code,
                error=error.message,
                cause=error.code,
            )
        logger.error(f"Unexpected card terminal error for {reference}: {error}")
        return PaymentResponse.failed(
            error_code=error_code,
            error=str(error) or type(error).__name__,
            cause=type(error).__name__,
        )

    def _not_connected(self) -> PaymentResponse:
        return PaymentResponse.failed(
            error_code=ErrorCode.TERMINAL_NOT_CONNECTED,
            error="Card terminal is not connected",
        )

    def _log_result(self, action: str, reference: str, response: PaymentResponse) -> None:
        if response.success:
            receipt = sanitize(response.receipt_data or "")
            logger.info(
                f"{action} approved for {reference}: tx={response.transaction_id}, "
                f"receipt={receipt!r}, digest={hash_data(response.receipt_data or '')[:16]}"
            )
        else:
            logger.warning(
                f"{action} declined for {reference}: {response.error_code} ({response.error})"
            )

    def _on_message(self, line: str) -> None:
        if self._correlator is None or not self._correlator.feed(line):
            logger.warning(f"Unsolicited card terminal line: {sanitize(line)!r}")

    def _on_close(self, error: Optional[BaseException]) -> None:
        if self._correlator:
            self._correlator.reject_all()
        if self._connected:
            logger.error(f"Card terminal line lost: {error or 'closed'}")
        self._connected = False
        self._correlator = None
        self._transport = None


# =============================================================================
# QR Terminal (HTTP)
# =============================================================================


class QRPaymentTerminal(PaymentTerminal):
    """
    QR payment API client.

    Stateless: connect() is a health probe and every payment is an
    independent POST with bearer authentication.
    """

    def __init__(
        self,
        settings: Optional[QRPaySettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the QR terminal.

        Args:
            settings: API base URL, key and timeout (settings when omitted).
            client: Optional preconfigured HTTP client.
        """
        self._settings = settings or get_settings().qr_pay
        self._client = client
        self._owns_client = client is None
        self._connected = False

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.QR

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=self._settings.timeout,
            )
            self._owns_client = True
        return self._client

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.api_key}"}

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send an authenticated request to the payment API.

        Raises:
            NetworkError: If the API cannot be reached.
        """
        try:
            return await self._get_client().request(
                method, path, headers=self._auth_headers, **kwargs
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                str(e) or "Network error",
                details={"path": path, "reason": type(e).__name__},
            ) from e

    async def connect(self) -> bool:
        """Health probe against GET /health."""
        try:
            response = await self._send("GET", "/health")
        except NetworkError as e:
            logger.error(f"QR payment API unreachable: {e.message}")
            self._connected = False
            return False
        self._connected = response.is_success
        logger.info(f"QR payment API health: {response.status_code}")
        return self._connected

    async def disconnect(self) -> None:
        """Nothing to tear down beyond the HTTP client."""
        self._connected = False
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def process_payment(self, request: PaymentRequest) -> PaymentResponse:
        """POST /payments with {amount, currency, orderId, method: 'qr'}."""
        payload = {
            "amount": request.amount,
            "currency": request.currency,
            "orderId": request.order_id,
            "method": PaymentMethod.QR.value,
        }
        logger.info(f"QR payment requested: order={request.order_id}, amount={request.amount}")
        try:
            response = await self._send("POST", "/payments", json=payload)
        except NetworkError as e:
            logger.error(f"QR payment network error for {request.order_id}: {e.message}")
            return PaymentResponse.failed(ErrorCode.NETWORK_ERROR, error=e.message)

        data = self._json_body(response)
        if response.is_success:
            transaction_id = data.get("transactionId")
            if not transaction_id:
                logger.error(f"QR payment reply without transaction id: {data}")
                return PaymentResponse.failed(
                    ErrorCode.API_ERROR, error="Missing transactionId in API response"
                )
            logger.info(f"QR payment approved: order={request.order_id}, tx={transaction_id}")
            return PaymentResponse.approved(
                transaction_id=transaction_id,
                approval_number=data.get("approvalNumber"),
            )

        logger.warning(f"QR payment rejected ({response.status_code}): {data}")
        return PaymentResponse.failed(
            error_code=data.get("errorCode") or ErrorCode.API_ERROR,
            error=data.get("message") or "Payment failed",
            status=response.status_code,
        )

    async def cancel_payment(self, transaction_id: str) -> PaymentResponse:
        """POST /payments/<id>/cancel."""
        try:
            response = await self._send("POST", f"/payments/{transaction_id}/cancel")
        except NetworkError as e:
            logger.error(f"QR cancel network error for {transaction_id}: {e.message}")
            return PaymentResponse.failed(ErrorCode.NETWORK_ERROR, error=e.message)

        data = self._json_body(response)
        if response.is_success:
            logger.info(f"QR payment cancelled: tx={transaction_id}")
            return PaymentResponse.approved(
                transaction_id=data.get("transactionId") or transaction_id,
                approval_number=data.get("approvalNumber"),
            )
        logger.warning(f"QR cancel rejected ({response.status_code}): {data}")
        return PaymentResponse.failed(
            error_code=data.get("errorCode") or ErrorCode.API_ERROR,
            error=data.get("message") or "Cancel failed",
            transaction_id=transaction_id,
            status=response.status_code,
        )

    async def get_status(self) -> TerminalStatus:
        """Health probe: ok -> connected, non-2xx -> error, unreachable -> disconnected."""
        try:
            response = await self._send("GET", "/health")
        except NetworkError as e:
            logger.warning(f"QR payment API status probe failed: {e.message}")
            return TerminalStatus.DISCONNECTED
        return TerminalStatus.CONNECTED if response.is_success else TerminalStatus.ERROR

    @staticmethod
    def _json_body(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


# =============================================================================
# Cash Terminal (IPC)
# =============================================================================


class CashPaymentTerminal(PaymentTerminal):
    """
    Cash acceptance through the external cash handler.

    Cash is non-reversible once inserted, so cancel_payment always fails.
    """

    def __init__(
        self,
        cash_handler: Optional[CashHandler],
        wait_timeout_ms: int = CASH_WAIT_TIMEOUT_MS,
    ) -> None:
        """
        Initialize the cash terminal.

        Args:
            cash_handler: Cash acceptor/dispenser collaborator.
            wait_timeout_ms: How long to wait for the customer's cash.
        """
        self._handler = cash_handler
        self._wait_timeout_ms = wait_timeout_ms
        self._connected = False

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.CASH

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Connected when the cash handler reports 'ready'."""
        if self._handler is None:
            return False
        try:
            status = await self._handler.get_status()
        except Exception as e:
            logger.error(f"Cash handler status error: {e}")
            self._connected = False
            return False
        self._connected = status == "ready"
        logger.info(f"Cash handler status: {status}")
        return self._connected

    async def disconnect(self) -> None:
        self._connected = False

    async def process_payment(self, request: PaymentRequest) -> PaymentResponse:
        """Wait for cash, dispense change, and report the receipt line."""
        if not self._connected or self._handler is None:
            return PaymentResponse.failed(
                ErrorCode.CASH_HANDLER_NOT_CONNECTED,
                error="Cash handler is not connected",
            )

        logger.info(f"Cash payment requested: order={request.order_id}, amount={request.amount}")
        try:
            result = await self._handler.wait_for_cash(request.amount, self._wait_timeout_ms)
            if not result.get("success"):
                logger.warning(f"Cash payment not completed for {request.order_id}: {result}")
                return PaymentResponse.failed(
                    error_code=result.get("error_code") or ErrorCode.CASH_PROCESSING_ERROR,
                    error=result.get("error") or "Cash processing failed",
                )

            received = int(result.get("received_amount", 0))
            change = received - request.amount
            if change > 0:
                logger.info(f"Dispensing change: {change}")
                await self._handler.dispense_change(change)
        except Exception as e:
            logger.error(f"Cash payment error for {request.order_id}: {e}")
            return PaymentResponse.failed(
                ErrorCode.CASH_PROCESSING_ERROR,
                error=str(e) or "Cash processing failed",
            )

        change = max(change, 0)
        return PaymentResponse.approved(
            transaction_id=f"CASH_{int(time.time() * 1000)}",
            receipt_data=(
                f"현금결제: {request.amount}원, 받은금액: {received}원, 거스름돈: {change}원"
            ),
        )

    async def cancel_payment(self, transaction_id: str) -> PaymentResponse:
        return PaymentResponse.failed(
            ErrorCode.CASH_CANCEL_NOT_SUPPORTED,
            error="Cash payments cannot be cancelled",
            transaction_id=transaction_id,
        )

    async def get_status(self) -> TerminalStatus:
        if not self._connected or self._handler is None:
            return TerminalStatus.DISCONNECTED
        try:
            status = await self._handler.get_status()
        except Exception as e:
            logger.warning(f"Cash handler status probe failed: {e}")
            return TerminalStatus.ERROR
        if status == "ready":
            return TerminalStatus.CONNECTED
        try:
            return TerminalStatus(status)
        except ValueError:
            return TerminalStatus.ERROR
