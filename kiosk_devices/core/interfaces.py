"""
Interfaces (Protocols) for the kiosk device layer.

Defines contracts for payment terminals, transports and the external
cash-handling collaborator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from .value_objects import PaymentMethod, PaymentRequest, PaymentResponse, TerminalStatus


# =============================================================================
# Transport Interfaces
# =============================================================================


MessageCallback = Callable[[str], None]
CloseCallback = Callable[[Optional[BaseException]], None]


@runtime_checkable
class LineTransport(Protocol):
    """Protocol for a line-oriented byte transport to one endpoint."""

    @property
    def is_open(self) -> bool:
        """Check if the transport is open."""
        ...

    async def open(self) -> None:
        """Open the transport."""
        ...

    async def write(self, data: bytes) -> None:
        """Write raw bytes."""
        ...

    async def close(self) -> None:
        """Close the transport (idempotent)."""
        ...

    def set_handlers(
        self,
        on_message: Optional[MessageCallback] = None,
        on_close: Optional[CloseCallback] = None,
    ) -> None:
        """Register inbound message and close callbacks."""
        ...


# =============================================================================
# Payment Terminal Interface
# =============================================================================


class PaymentTerminal(ABC):
    """
    Abstract base class for payment terminals.

    Implementations never raise from process_payment or cancel_payment;
    every failure is reported as a failed PaymentResponse.
    """

    @property
    @abstractmethod
    def method(self) -> PaymentMethod:
        """Get the payment method this terminal serves."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if terminal is connected."""
        ...

    @abstractmethod
    async def connect(self) -> bool:
        """
        Connect to the terminal.

        Returns:
            True if connection successful.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the terminal."""
        ...

    @abstractmethod
    async def process_payment(self, request: PaymentRequest) -> PaymentResponse:
        """
        Process a payment.

        Args:
            request: The payment request.

        Returns:
            Payment response.
        """
        ...

    @abstractmethod
    async def cancel_payment(self, transaction_id: str) -> PaymentResponse:
        """
        Cancel a previously approved payment.

        Args:
            transaction_id: Transaction to cancel.

        Returns:
            Payment response.
        """
        ...

    @abstractmethod
    async def get_status(self) -> TerminalStatus:
        """Get current terminal status."""
        ...


# =============================================================================
# External Collaborators
# =============================================================================


@runtime_checkable
class CashHandler(Protocol):
    """Protocol for the cash acceptor/dispenser collaborator."""

    async def get_status(self) -> str:
        """Get the cash handler status ('ready' when usable)."""
        ...

    async def wait_for_cash(self, amount: int, timeout_ms: int) -> dict[str, Any]:
        """
        Wait until at least amount is inserted.

        Returns:
            Dictionary with success, received_amount, error, error_code.
        """
        ...

    async def dispense_change(self, amount: int) -> Any:
        """Dispense change for the specified amount."""
        ...

