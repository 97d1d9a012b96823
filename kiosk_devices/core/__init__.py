"""
Core module - Foundation layer with no external dependencies.

Contains:
- Exceptions
- Interfaces (Protocols)
- Value Objects
"""

from .exceptions import (
    KioskDeviceError,
    DeviceError,
    DeviceConnectionError,
    NotConnectedError,
    ConnectionLostError,
    ResponseTimeoutError,
    WriteError,
    InvalidArgumentError,
    PaymentError,
    NetworkError,
    UnsupportedMethodError,
)
from .interfaces import (
    LineTransport,
    PaymentTerminal,
    CashHandler,
)
from .value_objects import (
    PaymentMethod,
    TerminalStatus,
    ErrorCode,
    PaymentRequest,
    PaymentResponse,
    MatrixButtonCommand,
)


__all__ = [
    # Exceptions
    "KioskDeviceError",
    "DeviceError",
    "DeviceConnectionError",
    "NotConnectedError",
    "ConnectionLostError",
    "ResponseTimeoutError",
    "WriteError",
    "InvalidArgumentError",
    "PaymentError",
    "NetworkError",
    "UnsupportedMethodError",
    # Interfaces
    "LineTransport",
    "PaymentTerminal",
    "CashHandler",
    # Value Objects
    "PaymentMethod",
    "TerminalStatus",
    "ErrorCode",
    "PaymentRequest",
    "PaymentResponse",
    "MatrixButtonCommand",
]
