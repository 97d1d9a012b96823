"""
Line protocol package.

Transport, framing, classification and command/response correlation
for the newline-delimited serial devices of the kiosk.
"""

from .framer import LineFramer
from .classifier import (
    ControllerStateEvent,
    DiagnosticEvent,
    Event,
    FirmwareStatusEvent,
    MatrixAckEvent,
    SensorEvent,
    Unrecognized,
    classify,
    is_detected,
)
from .correlator import (
    CommandCorrelator,
    PendingRequest,
    any_message,
)
from .transport import SerialLineTransport


__all__ = [
    # Framing
    "LineFramer",
    # Classification
    "Event",
    "SensorEvent",
    "ControllerStateEvent",
    "MatrixAckEvent",
    "FirmwareStatusEvent",
    "DiagnosticEvent",
    "Unrecognized",
    "classify",
    "is_detected",
    # Correlation
    "CommandCorrelator",
    "PendingRequest",
    "any_message",
    # Transport
    "SerialLineTransport",
]
