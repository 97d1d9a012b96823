"""
Pytest configuration for kiosk device tests.

Routes log output to a temporary file and provides in-memory fakes for
the serial line and payment terminals.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import pytest


os.environ.setdefault(
    "KIOSK_LOG_FILE",
    str(Path(tempfile.gettempdir()) / "kiosk_devices_tests" / "kiosk_devices.log"),
)

from kiosk_devices.core.exceptions import DeviceConnectionError, NotConnectedError  # noqa: E402
from kiosk_devices.core.interfaces import PaymentTerminal  # noqa: E402
from kiosk_devices.core.value_objects import (  # noqa: E402
    PaymentMethod,
    PaymentRequest,
    PaymentResponse,
    TerminalStatus,
)


# Loop timers may fire up to one clock tick before their deadline
CLOCK_SLACK = 0.002


# =============================================================================
# Fake Serial Line
# =============================================================================


class FakeTransport:
    """
    In-memory LineTransport.

    Writes are recorded; an optional responder maps each write to lines
    the device sends back, delivered on the next loop iteration.
    """

    def __init__(
        self,
        fail_open: bool = False,
        responder: Optional[Callable[[bytes], list[str]]] = None,
    ) -> None:
        self.fail_open = fail_open
        self.responder = responder
        self.written: list[bytes] = []
        self.open_count = 0
        self.close_count = 0
        self._open = False
        self._on_message = None
        self._on_close = None

    @property
    def is_open(self) -> bool:
        return self._open

    def set_handlers(self, on_message=None, on_close=None) -> None:
        self._on_message = on_message
        self._on_close = on_close

    async def open(self) -> None:
        if self.fail_open:
            raise DeviceConnectionError("Port not found", device_name="fake")
        self._open = True
        self.open_count += 1

    async def write(self, data: bytes) -> None:
        if not self._open:
            raise NotConnectedError("Fake line is closed", device_name="fake")
        self.written.append(data)
        if self.responder:
            loop = asyncio.get_running_loop()
            for line in self.responder(data):
                loop.call_soon(self.receive, line)

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        self.close_count += 1
        if self._on_close:
            self._on_close(None)

    def receive(self, line: str) -> None:
        """Deliver one framed line from the device."""
        if self._open and self._on_message:
            self._on_message(line)

    def drop(self, error: Optional[BaseException] = None) -> None:
        """Simulate the line disappearing underneath the driver."""
        self._open = False
        if self._on_close:
            self._on_close(error)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Fake serial line, open succeeds."""
    return FakeTransport()


@pytest.fixture
def transport_factory(fake_transport):
    """Transport factory always returning the fake_transport fixture."""
    return lambda port, baudrate: fake_transport


# =============================================================================
# Stub Payment Terminal
# =============================================================================


class StubTerminal(PaymentTerminal):
    """Scriptable terminal recording the requests it receives."""

    def __init__(
        self,
        method: PaymentMethod,
        status: TerminalStatus = TerminalStatus.CONNECTED,
        status_error: Optional[Exception] = None,
        disconnect_error: Optional[Exception] = None,
        connect_result: bool = True,
        payment_error: Optional[Exception] = None,
    ) -> None:
        self._method = method
        self._payment_error = payment_error
        self._status = status
        self._status_error = status_error
        self._disconnect_error = disconnect_error
        self._connect_result = connect_result
        self._connected = False
        self.requests: list[PaymentRequest] = []
        self.cancelled: list[str] = []
        self.disconnected = False

    @property
    def method(self) -> PaymentMethod:
        return self._method

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self._connected = self._connect_result
        return self._connect_result

    async def disconnect(self) -> None:
        if self._disconnect_error:
            raise self._disconnect_error
        self.disconnected = True
        self._connected = False

    async def process_payment(self, request: PaymentRequest) -> PaymentResponse:
        self.requests.append(request)
        if self._payment_error:
            raise self._payment_error
        return PaymentResponse.approved(transaction_id=f"{self._method.value.upper()}-TX")

    async def cancel_payment(self, transaction_id: str) -> PaymentResponse:
        self.cancelled.append(transaction_id)
        if self._payment_error:
            raise self._payment_error
        return PaymentResponse.approved(transaction_id=transaction_id)

    async def get_status(self) -> TerminalStatus:
        if self._status_error:
            raise self._status_error
        return self._status
