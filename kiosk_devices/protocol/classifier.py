"""
Protocol Classifier for the controller board line.

Parses one framed line into a typed event. Recognized forms:

    SENSOR:DETECTED            -> SensorEvent (synthetic near distance)
    SENSOR:CLEAR               -> SensorEvent (synthetic far distance)
    SENSOR:DISTANCE:<float>    -> SensorEvent (detected when <= 50 cm)
    CONTROLLER:<DEVICE>:<ON|OFF> -> ControllerStateEvent
    BUTTON_<n>:SENT            -> MatrixAckEvent
    MATRIX_SIGNAL:...          -> DiagnosticEvent
    STATUS:READY               -> FirmwareStatusEvent (ready)
    VERSION:<v>                -> FirmwareStatusEvent (version)

Anything else becomes Unrecognized; classification never raises.
"""

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Optional, Union

from ..configs import DETECTION_THRESHOLD_CM, SYNTHETIC_FAR_CM, SYNTHETIC_NEAR_CM


logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class SensorEvent:
    """Proximity sensor reading."""

    distance: float
    is_detected: bool
    timestamp: float
    raw: str = ""


@dataclass(frozen=True)
class ControllerStateEvent:
    """LED/motor state reported by the controller board."""

    device: str
    is_on: bool
    timestamp: float
    raw: str = ""


@dataclass(frozen=True)
class MatrixAckEvent:
    """Firmware acknowledgment of a matrix button press."""

    button_id: int
    timestamp: float
    raw: str = ""


@dataclass(frozen=True)
class FirmwareStatusEvent:
    """Firmware readiness or version report."""

    timestamp: float
    ready: Optional[bool] = None
    version: Optional[str] = None
    raw: str = ""


@dataclass(frozen=True)
class DiagnosticEvent:
    """Debug output from the firmware; carries no state."""

    message: str
    timestamp: float
    raw: str = ""


@dataclass(frozen=True)
class Unrecognized:
    """Line that matched no known form."""

    raw: str
    reason: str
    timestamp: float


Event = Union[
    SensorEvent,
    ControllerStateEvent,
    MatrixAckEvent,
    FirmwareStatusEvent,
    DiagnosticEvent,
    Unrecognized,
]


# =============================================================================
# Patterns
# =============================================================================

_SENSOR_DISTANCE = re.compile(r"^SENSOR:DISTANCE:(?P<value>.+)$")
_CONTROLLER = re.compile(r"^CONTROLLER:(?P<device>[A-Za-z0-9_]+):(?P<state>ON|OFF)$")
_BUTTON_ACK = re.compile(r"^BUTTON_(?P<button>\d+):SENT$")


def is_detected(distance: float) -> bool:
    """Presence policy: a customer is detected at or within the threshold."""
    return distance <= DETECTION_THRESHOLD_CM


def classify(raw_line: str, now: Optional[float] = None) -> Event:
    """
    Classify a framed line into a typed event.

    Args:
        raw_line: One message as emitted by the line framer.
        now: Timestamp to stamp the event with (default: time.time()).

    Returns:
        The classified event; Unrecognized for unknown or malformed lines.
    """
    timestamp = time.time() if now is None else now
    line = raw_line.strip()

    if line.startswith("SENSOR:"):
        if line == "SENSOR:DETECTED":
            return SensorEvent(SYNTHETIC_NEAR_CM, True, timestamp, line)
        if line == "SENSOR:CLEAR":
            return SensorEvent(SYNTHETIC_FAR_CM, False, timestamp, line)

        match = _SENSOR_DISTANCE.match(line)
        if match:
            try:
                distance = float(match.group("value"))
            except ValueError:
                return _unrecognized(line, "invalid distance value", timestamp)
            if math.isnan(distance) or math.isinf(distance):
                return _unrecognized(line, "invalid distance value", timestamp)
            return SensorEvent(distance, is_detected(distance), timestamp, line)

        return _unrecognized(line, "unknown sensor message", timestamp)

    if line.startswith("CONTROLLER:"):
        match = _CONTROLLER.match(line)
        if not match:
            return _unrecognized(line, "malformed controller message", timestamp)
        return ControllerStateEvent(
            device=match.group("device").lower(),
            is_on=match.group("state") == "ON",
            timestamp=timestamp,
            raw=line,
        )

    if line.startswith("BUTTON_"):
        match = _BUTTON_ACK.match(line)
        if not match:
            return _unrecognized(line, "malformed button acknowledgment", timestamp)
        return MatrixAckEvent(int(match.group("button")), timestamp, line)

    if line.startswith("MATRIX_SIGNAL:"):
        return DiagnosticEvent(line[len("MATRIX_SIGNAL:"):], timestamp, line)

    if line.startswith("STATUS:READY"):
        return FirmwareStatusEvent(timestamp=timestamp, ready=True, raw=line)

    if line.startswith("VERSION:"):
        return FirmwareStatusEvent(
            timestamp=timestamp,
            version=line[len("VERSION:"):].strip(),
            raw=line,
        )

    return _unrecognized(line, "unknown prefix", timestamp)


def _unrecognized(line: str, reason: str, timestamp: float) -> Unrecognized:
    logger.debug(f"Unrecognized line ({reason}): {line!r}")
    return Unrecognized(raw=line, reason=reason, timestamp=timestamp)
