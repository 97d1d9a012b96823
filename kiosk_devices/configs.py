"""
Configuration constants for the kiosk device layer.

This module provides fixed protocol constants and defaults for the
hardware controller line, the payment terminals, and external services.
Values that vary per deployment live in infrastructure.settings.
"""

from typing import Final


# =============================================================================
# System Configuration
# =============================================================================

SERVICE_NAME: Final[str] = "kiosk_devices"
DEFAULT_LOG_FILE: Final[str] = "logs/kiosk_devices.log"


# =============================================================================
# External Services Configuration
# =============================================================================

REDIS_HOST: Final[str] = "localhost"
REDIS_PORT: Final[int] = 6379
WS_URL: Final[str] = "ws://localhost:8005/ws"
QR_API_BASE_URL: Final[str] = "https://api.qrpay.example.com"


# =============================================================================
# Hardware Controller Line
# =============================================================================

HARDWARE_PORT: Final[str] = "/dev/ttyACM0"
HARDWARE_BAUDRATE: Final[int] = 115200
HARDWARE_DELIMITER: Final[bytes] = b"\n"

CMD_STATUS: Final[str] = "STATUS"

MATRIX_BUTTON_MIN: Final[int] = 1
MATRIX_BUTTON_MAX: Final[int] = 40

# Presence threshold in centimetres, fixed policy (not negotiated with firmware)
DETECTION_THRESHOLD_CM: Final[float] = 50.0
SYNTHETIC_NEAR_CM: Final[float] = 25.0
SYNTHETIC_FAR_CM: Final[float] = 100.0

# Simulation range for distance reads without hardware
SIMULATED_DISTANCE_MIN_CM: Final[float] = 20.0
SIMULATED_DISTANCE_MAX_CM: Final[float] = 120.0

STATUS_PROBE_TIMEOUT_S: Final[float] = 3.0


# =============================================================================
# Card Terminal Line
# =============================================================================

CARD_TERMINAL_PORT: Final[str] = "/dev/ttyS0"
CARD_TERMINAL_BAUDRATE: Final[int] = 9600
CARD_TERMINAL_DELIMITER: Final[bytes] = b"\r\n"
CARD_PAYMENT_TIMEOUT_S: Final[float] = 30.0
CARD_STATUS_TIMEOUT_S: Final[float] = 5.0


# =============================================================================
# Cash Handler
# =============================================================================

CASH_WAIT_TIMEOUT_MS: Final[int] = 60000
CASH_COMMAND_CHANNEL: Final[str] = "payment_system_cash_commands"
# Grace on top of the cash wait for the IPC reply itself
CASH_REPLY_GRACE_S: Final[float] = 5.0
CASH_COMMAND_TIMEOUT_S: Final[float] = 10.0


# =============================================================================
# Framing
# =============================================================================

MAX_LINE_LENGTH: Final[int] = 4096
READ_CHUNK_SIZE: Final[int] = 256

DEFAULT_CURRENCY: Final[str] = "KRW"
