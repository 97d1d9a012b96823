"""
Payment Service - Dispatches payment operations to the terminal for a method.

Failures in one terminal never affect the others: status queries run
concurrently and are isolated, and disconnect_all keeps going past a
failing terminal.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Optional, Union

from ..core.exceptions import InvalidArgumentError, UnsupportedMethodError
from ..core.interfaces import PaymentTerminal
from ..core.value_objects import (
    ErrorCode,
    PaymentMethod,
    PaymentRequest,
    PaymentResponse,
    TerminalStatus,
)
from ..domain.terminal_registry import TerminalRegistry
from ..loggers import logger


class PaymentService:
    """
    Application service for payment operations.

    Terminals are registered per payment method; the service never
    talks to a transport itself.
    """

    def __init__(self, terminals: Optional[list[PaymentTerminal]] = None) -> None:
        """
        Initialize the payment service.

        Args:
            terminals: Terminals to register, one per payment method.
        """
        self._registry = TerminalRegistry()
        for terminal in terminals or []:
            self._registry.register(terminal)

    @property
    def registry(self) -> TerminalRegistry:
        """Get the terminal registry."""
        return self._registry

    def register_terminal(self, terminal: PaymentTerminal) -> None:
        """Register a terminal under its payment method."""
        self._registry.register(terminal)

    # =========================================================================
    # Terminal Lifecycle
    # =========================================================================

    async def initialize_terminal(self, method: Union[PaymentMethod, str]) -> bool:
        """
        Connect the terminal for a payment method.

        Raises:
            UnsupportedMethodError: If no terminal serves the method.
        """
        terminal = self._registry.get(method)
        if terminal is None:
            raise UnsupportedMethodError(str(getattr(method, "value", method)))

        connected = await terminal.connect()
        logger.info(f"Terminal {self._registry.method_key(method)}: {'connected' if connected else 'failed'}")
        return connected

    async def disconnect_all(self) -> None:
        """Disconnect every terminal; one failure does not stop the others."""
        for method, terminal in self._registry.items():
            try:
                await terminal.disconnect()
            except Exception as e:
                logger.error(f"Error disconnecting {method} terminal: {e}")

    # =========================================================================
    # Payments
    # =========================================================================

    async def process_payment(self, order: Any) -> PaymentResponse:
        """
        Process an order with the terminal for its payment method.

        Args:
            order: Mapping or object with id, total (or total_amount)
                and payment_method.

        Returns:
            The terminal's response, or a failed response when the method
            is unsupported or the order is malformed.
        """
        method = self._order_field(order, "payment_method", "paymentMethod")
        terminal = self._registry.get(method) if method is not None else None
        if terminal is None:
            logger.warning(f"Unsupported payment method: {method}")
            return self._unsupported(method)

        try:
            request = PaymentRequest.create(
                amount=self._order_field(order, "total", "total_amount", "totalAmount"),
                order_id=str(self._order_field(order, "id", "order_id") or ""),
                method=terminal.method.value,
            )
        except InvalidArgumentError as e:
            logger.warning(f"Invalid payment order: {e}")
            return PaymentResponse.failed(ErrorCode.INVALID_REQUEST, error=e.message)

        try:
            return await terminal.process_payment(request)
        except Exception as e:
            logger.error(f"Payment terminal {request.method.value} raised for {request.order_id}: {e}")
            return PaymentResponse.failed(
                ErrorCode.PAYMENT_PROCESSING_ERROR,
                error=str(e) or type(e).__name__,
            )

    async def cancel_payment(
        self,
        method: Union[PaymentMethod, str],
        transaction_id: str,
    ) -> PaymentResponse:
        """Cancel a transaction on the terminal for a payment method."""
        terminal = self._registry.get(method)
        if terminal is None:
            logger.warning(f"Unsupported payment method: {method}")
            return self._unsupported(method)
        try:
            return await terminal.cancel_payment(transaction_id)
        except Exception as e:
            logger.error(f"Cancel on {self._registry.method_key(method)} terminal raised: {e}")
            return PaymentResponse.failed(
                ErrorCode.CANCEL_PROCESSING_ERROR,
                error=str(e) or type(e).__name__,
            )

    # =========================================================================
    # Status
    # =========================================================================

    async def get_terminal_status(self, method: Union[PaymentMethod, str]) -> TerminalStatus:
        """Get the status of one terminal; unknown methods report error."""
        terminal = self._registry.get(method)
        if terminal is None:
            return TerminalStatus.ERROR
        return await self._safe_status(self._registry.method_key(method), terminal)

    async def get_all_terminal_status(self) -> dict[str, TerminalStatus]:
        """Query every terminal concurrently; a failing one reports error."""
        items = self._registry.items()
        statuses = await asyncio.gather(
            *(self._safe_status(method, terminal) for method, terminal in items)
        )
        return {method: status for (method, _), status in zip(items, statuses)}

    async def _safe_status(self, method: str, terminal: PaymentTerminal) -> TerminalStatus:
        try:
            return await terminal.get_status()
        except Exception as e:
            logger.error(f"Status query failed for {method} terminal: {e}")
            return TerminalStatus.ERROR

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _order_field(order: Any, *names: str) -> Any:
        for name in names:
            if isinstance(order, Mapping):
                value = order.get(name)
            else:
                value = getattr(order, name, None)
            if value is not None:
                return value
        return None

    @staticmethod
    def _unsupported(method: Any) -> PaymentResponse:
        name = getattr(method, "value", method)
        return PaymentResponse.failed(
            ErrorCode.UNSUPPORTED_PAYMENT_METHOD,
            error=f"Unsupported payment method: {name}",
        )
