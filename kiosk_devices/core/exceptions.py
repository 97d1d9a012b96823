"""
Custom exceptions for the kiosk device layer.

Provides a hierarchy of typed exceptions for transports, protocol
correlation, and payment processing.
"""

from typing import Any, Optional


class KioskDeviceError(Exception):
    """Base exception for all kiosk device errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Optional error code for programmatic handling.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Device Errors
# =============================================================================


class DeviceError(KioskDeviceError):
    """Base exception for device and transport errors."""

    def __init__(
        self,
        message: str,
        device_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.device_name = device_name
        if device_name:
            self.details["device"] = device_name


class DeviceConnectionError(DeviceError):
    """Transport could not be opened."""

    pass


class NotConnectedError(DeviceError):
    """Operation attempted while the device is disconnected."""

    pass


class ConnectionLostError(DeviceError):
    """Transport closed while requests were pending."""

    pass


class ResponseTimeoutError(DeviceError, TimeoutError):
    """No matching response arrived within the deadline."""

    pass


class WriteError(DeviceError):
    """Writing to the transport failed."""

    pass


# =============================================================================
# Argument Errors
# =============================================================================


class InvalidArgumentError(KioskDeviceError, ValueError):
    """Out-of-range or malformed argument."""

    pass


# =============================================================================
# Payment Errors
# =============================================================================


class PaymentError(KioskDeviceError):
    """Base exception for payment-related errors."""

    pass


class NetworkError(PaymentError):
    """HTTP transport failure."""

    pass


class UnsupportedMethodError(PaymentError):
    """No terminal is registered for the payment method."""

    def __init__(self, method: str, **kwargs: Any) -> None:
        super().__init__(f"Unsupported payment method: {method}", **kwargs)
        self.method = method
        self.details["method"] = method
