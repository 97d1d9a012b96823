"""
Domain layer - Device drivers and payment terminals.

Contains:
- Device state store
- Hardware controller
- Payment terminals and their registry
"""

from .device_state import (
    DeviceState,
    DeviceStateStore,
    SensorReading,
    ControllerState,
    FirmwareInfo,
)
from .hardware_controller import (
    HardwareController,
    ControllerPhase,
)
from .payment_terminals import (
    CardPaymentTerminal,
    QRPaymentTerminal,
    CashPaymentTerminal,
)
from .terminal_registry import TerminalRegistry


__all__ = [
    # Device State
    "DeviceState",
    "DeviceStateStore",
    "SensorReading",
    "ControllerState",
    "FirmwareInfo",
    # Hardware Controller
    "HardwareController",
    "ControllerPhase",
    # Payment Terminals
    "CardPaymentTerminal",
    "QRPaymentTerminal",
    "CashPaymentTerminal",
    "TerminalRegistry",
]
