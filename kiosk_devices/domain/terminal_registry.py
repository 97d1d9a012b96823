"""
Terminal Registry - Payment terminals keyed by payment method.
"""

from __future__ import annotations

from typing import Optional, Union

from ..core.interfaces import PaymentTerminal
from ..core.value_objects import PaymentMethod
from ..loggers import logger


class TerminalRegistry:
    """
    Registry for payment terminals.

    At most one terminal per payment method. Lookups accept either a
    PaymentMethod or its string value; unknown strings simply miss.
    """

    def __init__(self) -> None:
        """Initialize the registry."""
        self._terminals: dict[str, PaymentTerminal] = {}

    @staticmethod
    def method_key(method: Union[PaymentMethod, str]) -> str:
        return method.value if isinstance(method, PaymentMethod) else str(method)

    def register(self, terminal: PaymentTerminal) -> None:
        """
        Register a terminal under its payment method.

        Args:
            terminal: Terminal to register (replaces any previous one).
        """
        key = self.method_key(terminal.method)
        if key in self._terminals:
            logger.warning(f"Replacing registered terminal for method: {key}")
        self._terminals[key] = terminal
        logger.debug(f"Registered terminal: {key} ({type(terminal).__name__})")

    def get(self, method: Union[PaymentMethod, str]) -> Optional[PaymentTerminal]:
        """
        Get the terminal for a payment method.

        Returns:
            Terminal or None if no terminal serves the method.
        """
        return self._terminals.get(self.method_key(method))

    def methods(self) -> list[str]:
        """Get registered method names in registration order."""
        return list(self._terminals)

    def items(self) -> list[tuple[str, PaymentTerminal]]:
        """Get (method, terminal) pairs in registration order."""
        return list(self._terminals.items())

