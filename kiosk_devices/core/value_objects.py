"""
Value Objects for the kiosk device layer.

Immutable objects exchanged between the payment dispatcher, the
terminals and the UI process.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..configs import DEFAULT_CURRENCY, MATRIX_BUTTON_MAX, MATRIX_BUTTON_MIN
from .exceptions import InvalidArgumentError


# =============================================================================
# Enums
# =============================================================================


class PaymentMethod(str, Enum):
    """Payment methods a kiosk order can name."""

    CARD = "card"
    MOBILE = "mobile"
    QR = "qr"
    CASH = "cash"


class TerminalStatus(str, Enum):
    """Connection status of a payment terminal."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    BUSY = "busy"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Machine-readable payment error codes reported to the UI."""

    TERMINAL_NOT_CONNECTED = "TERMINAL_NOT_CONNECTED"
    PAYMENT_PROCESSING_ERROR = "PAYMENT_PROCESSING_ERROR"
    CANCEL_PROCESSING_ERROR = "CANCEL_PROCESSING_ERROR"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    CASH_HANDLER_NOT_CONNECTED = "CASH_HANDLER_NOT_CONNECTED"
    CASH_PROCESSING_ERROR = "CASH_PROCESSING_ERROR"
    CASH_CANCEL_NOT_SUPPORTED = "CASH_CANCEL_NOT_SUPPORTED"
    UNSUPPORTED_PAYMENT_METHOD = "UNSUPPORTED_PAYMENT_METHOD"
    INVALID_REQUEST = "INVALID_REQUEST"


# =============================================================================
# Identifiers
# =============================================================================


def validate_identifier(value: Any, label: str) -> str:
    """
    Validate an order or transaction identifier.

    Raises:
        InvalidArgumentError: If the value is empty, not a string, or holds
            a comma, a control character or non-ASCII text.
    """
    if not isinstance(value, str) or not value:
        raise InvalidArgumentError(f"{label} must be a non-empty string")
    if not value.isascii() or not value.isprintable() or "," in value:
        raise InvalidArgumentError(
            f"{label} must be printable ASCII without commas: {value!r}"
        )
    return value


# =============================================================================
# Payment Request
# =============================================================================


@dataclass(frozen=True)
class PaymentRequest:
    """
    Immutable payment request handed to a terminal.

    Attributes:
        amount: Amount in the smallest currency unit, must be positive.
        order_id: Non-empty order identifier, unique per transaction.
        method: Payment method.
        currency: ISO currency code.
        customer_info: Optional customer contact data.
    """

    amount: int
    order_id: str
    method: PaymentMethod
    currency: str = DEFAULT_CURRENCY
    customer_info: Optional[tuple[tuple[str, str], ...]] = None

    def __post_init__(self) -> None:
        """Validate the request."""
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise InvalidArgumentError(f"Amount must be an integer: {self.amount!r}")
        if self.amount <= 0:
            raise InvalidArgumentError(f"Amount must be positive: {self.amount}")
        validate_identifier(self.order_id, "Order id")
        if not isinstance(self.method, PaymentMethod):
            try:
                object.__setattr__(self, "method", PaymentMethod(self.method))
            except ValueError:
                raise InvalidArgumentError(f"Unknown payment method: {self.method!r}")

    @classmethod
    def create(
        cls,
        amount: int,
        order_id: str,
        method: str,
        currency: str = DEFAULT_CURRENCY,
        customer_info: Optional[dict[str, str]] = None,
    ) -> "PaymentRequest":
        """Create a request from plain values."""
        info = tuple(sorted(customer_info.items())) if customer_info else None
        return cls(
            amount=amount,
            order_id=order_id,
            method=method,
            currency=currency,
            customer_info=info,
        )


# =============================================================================
# Payment Response
# =============================================================================


@dataclass(frozen=True)
class PaymentResponse:
    """
    Result of a terminal operation.

    On success transaction_id is present; on failure error_code is.
    """

    success: bool
    transaction_id: Optional[str] = None
    approval_number: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    receipt_data: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if self.success and not self.transaction_id:
            raise InvalidArgumentError("Successful payment response requires a transaction id")
        if not self.success and not self.error_code:
            raise InvalidArgumentError("Failed payment response requires an error code")

    @classmethod
    def approved(
        cls,
        transaction_id: str,
        approval_number: Optional[str] = None,
        receipt_data: Optional[str] = None,
    ) -> "PaymentResponse":
        """Create a successful response."""
        return cls(
            success=True,
            transaction_id=transaction_id,
            approval_number=approval_number,
            receipt_data=receipt_data,
        )

    @classmethod
    def failed(
        cls,
        error_code: str,
        error: Optional[str] = None,
        transaction_id: Optional[str] = None,
        **details: Any,
    ) -> "PaymentResponse":
        """Create a failed response."""
        code = error_code.value if isinstance(error_code, ErrorCode) else error_code
        return cls(
            success=False,
            transaction_id=transaction_id,
            error=error,
            error_code=code,
            details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the UI process."""
        result: dict[str, Any] = {"success": self.success}
        if self.transaction_id:
            result["transactionId"] = self.transaction_id
        if self.approval_number:
            result["approvalNumber"] = self.approval_number
        if self.receipt_data:
            result["receiptData"] = self.receipt_data
        if self.error:
            result["error"] = self.error
        if self.error_code:
            result["errorCode"] = self.error_code
        if self.details:
            result["details"] = dict(self.details)
        return result


# =============================================================================
# Matrix Button Command
# =============================================================================


@dataclass(frozen=True)
class MatrixButtonCommand:
    """Matrix button press sent to the controller board."""

    button_number: int

    def __post_init__(self) -> None:
        if isinstance(self.button_number, bool) or not isinstance(self.button_number, int):
            raise InvalidArgumentError(f"Button number must be an integer: {self.button_number!r}")
        if not MATRIX_BUTTON_MIN <= self.button_number <= MATRIX_BUTTON_MAX:
            raise InvalidArgumentError(
                f"Button number out of range [{MATRIX_BUTTON_MIN}, {MATRIX_BUTTON_MAX}]: "
                f"{self.button_number}",
                details={"button": self.button_number},
            )

    def encode(self) -> str:
        """Wire form sent on the controller line."""
        return str(self.button_number)
