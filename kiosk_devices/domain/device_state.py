"""
Device State Store.

Holds the latest sensor reading and controller (LED/motor) state of one
controller board. Only classified events mutate it; readers get copies.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Optional

from ..protocol.classifier import ControllerStateEvent, Event, FirmwareStatusEvent, SensorEvent
from ..loggers import logger


# =============================================================================
# State Data
# =============================================================================


@dataclass(frozen=True)
class SensorReading:
    """Latest proximity reading."""

    distance: Optional[float] = None
    is_detected: bool = False
    last_update: Optional[float] = None


@dataclass(frozen=True)
class ControllerState:
    """Logical LED/motor outputs of the controller board."""

    led1: bool = False
    led2: bool = False
    motor: bool = False


@dataclass(frozen=True)
class FirmwareInfo:
    """Firmware readiness and version, as last reported."""

    ready: bool = False
    version: Optional[str] = None


@dataclass(frozen=True)
class DeviceState:
    """Snapshot of everything known about the controller board."""

    sensor: SensorReading = field(default_factory=SensorReading)
    controller: ControllerState = field(default_factory=ControllerState)
    firmware: FirmwareInfo = field(default_factory=FirmwareInfo)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the UI process."""
        return {
            "sensorData": {
                "distance": self.sensor.distance,
                "isDetected": self.sensor.is_detected,
                "lastUpdate": self.sensor.last_update,
            },
            "controllerState": asdict(self.controller),
            "firmware": asdict(self.firmware),
        }


# =============================================================================
# State Store
# =============================================================================


class DeviceStateStore:
    """
    Single owner of a controller board's DeviceState.

    Sensor updates are monotonic in time: a reading stamped earlier than
    the current one is ignored.
    """

    CONTROLLER_KEYS = ("led1", "led2", "motor")

    def __init__(self) -> None:
        self._state = DeviceState()

    @property
    def state(self) -> DeviceState:
        """Get the current snapshot."""
        return self._state

    @property
    def sensor(self) -> SensorReading:
        """Get the latest sensor reading."""
        return self._state.sensor

    @property
    def controller(self) -> ControllerState:
        """Get the controller outputs."""
        return self._state.controller

    def apply(self, event: Event) -> bool:
        """
        Apply a classified event.

        Args:
            event: Event produced by the protocol classifier.

        Returns:
            True if the state changed.
        """
        if isinstance(event, SensorEvent):
            return self._apply_sensor(event)
        if isinstance(event, ControllerStateEvent):
            return self._apply_controller(event)
        if isinstance(event, FirmwareStatusEvent):
            return self._apply_firmware(event)
        return False

    def reset_controller(self) -> None:
        """Clear all controller outputs (logical stop)."""
        self._state = replace(self._state, controller=ControllerState())

    def _apply_sensor(self, event: SensorEvent) -> bool:
        last = self._state.sensor.last_update
        if last is not None and event.timestamp < last:
            logger.debug(f"Stale sensor reading ignored: {event.timestamp} < {last}")
            return False
        self._state = replace(
            self._state,
            sensor=SensorReading(
                distance=event.distance,
                is_detected=event.is_detected,
                last_update=event.timestamp,
            ),
        )
        return True

    def _apply_controller(self, event: ControllerStateEvent) -> bool:
        if event.device not in self.CONTROLLER_KEYS:
            logger.debug(f"Ignoring state for unknown controller output: {event.device}")
            return False
        controller = replace(self._state.controller, **{event.device: event.is_on})
        self._state = replace(self._state, controller=controller)
        return True

    def _apply_firmware(self, event: FirmwareStatusEvent) -> bool:
        firmware = self._state.firmware
        if event.ready is not None:
            firmware = replace(firmware, ready=event.ready)
        if event.version is not None:
            firmware = replace(firmware, version=event.version)
        self._state = replace(self._state, firmware=firmware)
        return True
