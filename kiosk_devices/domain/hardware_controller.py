"""
Hardware Controller - Controller board and proximity sensor line.

Composes the serial transport, line framer, protocol classifier, device
state store and command correlator for the kiosk's controller board.

Degraded mode: without a connected board, distance reads return a
simulated value and LED/motor control reports success, so the kiosk
stays operable for demonstration and testing.
"""

from __future__ import annotations

import asyncio
import random
import time
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Callable, Optional, Union

from ..configs import (
    CMD_STATUS,
    HARDWARE_DELIMITER,
    SIMULATED_DISTANCE_MAX_CM,
    SIMULATED_DISTANCE_MIN_CM,
    STATUS_PROBE_TIMEOUT_S,
)
from ..core.exceptions import (
    DeviceConnectionError,
    DeviceError,
    NotConnectedError,
)
from ..core.interfaces import LineTransport
from ..core.value_objects import MatrixButtonCommand
from ..event_system import EventPublisher, EventType
from ..infrastructure.settings import get_settings
from ..loggers import logger
from ..protocol.classifier import (
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
from ..protocol.correlator import CommandCorrelator
from ..protocol.transport import SerialLineTransport
from .device_state import DeviceState, DeviceStateStore


TransportFactory = Callable[[str, int], LineTransport]


# =============================================================================
# Controller Phases
# =============================================================================


class ControllerPhase(Enum):
    """Connection phases of the controller board."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()


def _default_transport(port: str, baudrate: int) -> LineTransport:
    return SerialLineTransport(
        port=port,
        baudrate=baudrate,
        delimiter=HARDWARE_DELIMITER,
        name="hardware",
    )


# =============================================================================
# Hardware Controller
# =============================================================================


class HardwareController:
    """
    Controller board driver.

    Only the CONNECTED phase may send commands. Matrix button presses are
    fire-and-forget; their BUTTON_<n>:SENT acknowledgments surface as
    MATRIX_ACK events on subscriber queues and the optional publisher.
    At most one correlated request (the STATUS probe) is outstanding on
    the line at a time.
    """

    def __init__(
        self,
        port: Optional[str] = None,
        baudrate: Optional[int] = None,
        publisher: Optional[EventPublisher] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            port: Default serial port path (settings when omitted).
            baudrate: Serial baudrate (settings when omitted).
            publisher: Optional publisher for out-of-band device events.
            transport_factory: Builds the transport for a port and baudrate.
        """
        settings = get_settings().hardware
        self._port = port or settings.port
        self._baudrate = baudrate or settings.baudrate
        self._publisher = publisher
        self._transport_factory = transport_factory or _default_transport

        self._phase = ControllerPhase.DISCONNECTED
        self._transport: Optional[LineTransport] = None
        self._correlator: Optional[CommandCorrelator] = None
        self._store = DeviceStateStore()
        self._probe_lock = asyncio.Lock()
        self._subscribers: list[tuple[Optional[set[EventType]], asyncio.Queue]] = []
        self._monitor_task: Optional[asyncio.Task] = None
        self._customer_present = False
        self._approached_at: Optional[float] = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def port(self) -> str:
        """Get serial port path."""
        return self._port

    @property
    def phase(self) -> ControllerPhase:
        """Get the connection phase."""
        return self._phase

    @property
    def is_connected(self) -> bool:
        """Check if the board is connected."""
        return self._phase is ControllerPhase.CONNECTED

    @property
    def customer_present(self) -> bool:
        """Check if the last monitored reading detected a customer."""
        return self._customer_present

    @property
    def state(self) -> DeviceState:
        """Get the latest device state snapshot."""
        return self._store.state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self, port_path: Optional[str] = None) -> bool:
        """
        Open the controller line and probe the firmware.

        Success requires only that the port opened; the STATUS probe is
        fire-and-forget.

        Args:
            port_path: Serial port path (default: configured port).

        Returns:
            True if the line is open.
        """
        if self.is_connected:
            logger.warning("Hardware controller already connected")
            return True

        if port_path:
            self._port = port_path

        logger.info(f"Connecting to controller board: {self._port}")
        self._phase = ControllerPhase.CONNECTING

        opened = False
        try:
            transport = self._transport_factory(self._port, self._baudrate)
            transport.set_handlers(on_message=self._on_message, on_close=self._on_close)
            await transport.open()
            opened = True
        except DeviceConnectionError as e:
            logger.error(f"Controller board connection failed: {e}")
            return False
        finally:
            if not opened:
                self._phase = ControllerPhase.DISCONNECTED

        self._transport = transport
        self._correlator = CommandCorrelator(transport.write, name="hardware")
        self._phase = ControllerPhase.CONNECTED
        logger.info("Controller board connected")
        self._emit(EventType.CONNECTED, port=self._port)

        try:
            await self.send_command(CMD_STATUS)
        except DeviceError as e:
            logger.warning(f"Initial STATUS probe failed: {e}")

        return True

    async def disconnect(self) -> None:
        """
        Stop all outputs and close the line.

        Idempotent and never raises.
        """
        await self.stop_monitoring()

        if self._transport is None:
            self._phase = ControllerPhase.DISCONNECTED
            return

        await self.stop_all()

        transport, self._transport = self._transport, None
        self._phase = ControllerPhase.DISCONNECTED
        if self._correlator:
            self._correlator.reject_all()
            self._correlator = None

        try:
            await transport.close()
        except Exception as e:
            logger.error(f"Error closing controller line: {e}")

        logger.info("Controller board disconnected")

    # =========================================================================
    # Commands
    # =========================================================================

    async def send_command(self, command: str) -> None:
        """
        Send a free-form command line.

        Raises:
            NotConnectedError: If the board is not connected.
            WriteError: If the write fails.
        """
        if not self.is_connected or self._transport is None:
            raise NotConnectedError("Hardware is not connected", device_name="hardware")

        await self._transport.write(f"{command}\n".encode("ascii"))
        logger.debug(f"Command sent: {command}")

    async def send_matrix_button(self, button_number: int) -> dict[str, int]:
        """
        Press a matrix button (1-40).

        Returns without waiting for the BUTTON_<n>:SENT acknowledgment.

        Raises:
            InvalidArgumentError: If the button number is out of range.
            NotConnectedError: If the board is not connected.
        """
        command = MatrixButtonCommand(button_number)
        await self.send_command(command.encode())
        logger.info(f"Matrix button sent: {command.button_number}")
        return {"button": command.button_number}

    async def request_status(self, timeout: float = STATUS_PROBE_TIMEOUT_S) -> bool:
        """
        Send STATUS and wait for STATUS:READY.

        Returns:
            True if the firmware reported ready within the timeout.
        """
        if not self.is_connected or self._correlator is None:
            return False

        async with self._probe_lock:
            try:
                await self._correlator.send(
                    CMD_STATUS,
                    predicate=lambda line: line.startswith("STATUS:READY"),
                    timeout=timeout,
                )
                return True
            except DeviceError as e:
                logger.warning(f"Firmware status probe failed: {e}")
                return False

    async def read_distance(self) -> Optional[float]:
        """
        Read the proximity sensor distance in centimetres.

        Disconnected: returns a simulated value in [20, 120).
        Connected: sends a STATUS probe and returns the last known
        distance, which the classifier updates asynchronously.
        """
        if not self.is_connected:
            span = SIMULATED_DISTANCE_MAX_CM - SIMULATED_DISTANCE_MIN_CM
            distance = SIMULATED_DISTANCE_MIN_CM + random.random() * span
            logger.debug(f"Simulated distance (no hardware): {distance:.1f}cm")
            return distance

        try:
            await self.send_command(CMD_STATUS)
        except DeviceError as e:
            logger.warning(f"Distance probe failed: {e}")

        return self._store.sensor.distance

    async def control_led(self, led_number: int, state: bool) -> bool:
        """LED control; the current firmware has no CONTROL command, so simulated."""
        logger.info(f"LED {led_number} {'ON' if state else 'OFF'} requested (simulated)")
        return True

    async def control_motor(self, angle: int, speed: int = 50) -> bool:
        """Motor control; simulated like control_led."""
        logger.info(f"Motor rotate {angle} deg at speed {speed} requested (simulated)")
        return True

    async def stop_all(self) -> bool:
        """Logically stop all controller outputs."""
        self._store.reset_controller()
        logger.info("All controller outputs stopped")
        return True

    def get_status(self) -> dict[str, Any]:
        """Get connection status and the latest device state."""
        return {
            "isConnected": self.is_connected,
            "phase": self._phase.name.lower(),
            "port": self._port,
            "customerPresent": self._customer_present,
            **self._store.state.to_dict(),
            "lastUpdate": datetime.now(timezone.utc).isoformat(),
        }

    # =========================================================================
    # Presence Monitoring
    # =========================================================================

    async def start_monitoring(self, interval: float = 1.0) -> bool:
        """
        Periodically read the distance and publish SENSOR_UPDATE events.

        CUSTOMER_APPROACH and CUSTOMER_DEPARTED are published when
        detection changes between consecutive readings.

        Args:
            interval: Seconds between reads.

        Returns:
            False if monitoring was already running.
        """
        if self._monitor_task and not self._monitor_task.done():
            return False
        self._monitor_task = asyncio.create_task(self._monitor_loop(interval))
        logger.info(f"Distance monitoring started ({interval}s interval)")
        return True

    async def stop_monitoring(self) -> None:
        """Stop periodic distance reads."""
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Distance monitoring stopped")

    async def _monitor_loop(self, interval: float) -> None:
        while True:
            distance = await self.read_distance()
            if distance is not None:
                self._emit(
                    EventType.SENSOR_UPDATE,
                    distance=distance,
                    isInRange=is_detected(distance),
                    simulated=not self.is_connected,
                )
                self._track_presence(distance)
            await asyncio.sleep(interval)

    def _track_presence(self, distance: float) -> None:
        detected = is_detected(distance)
        now = time.monotonic()
        if detected and not self._customer_present:
            self._approached_at = now
            logger.info(f"Customer approach detected at {distance:.1f}cm")
            self._emit(EventType.CUSTOMER_APPROACH, distance=distance, duration=0)
        elif not detected and self._customer_present:
            # Dwell time in milliseconds since the approach
            duration = int((now - (self._approached_at or now)) * 1000)
            self._approached_at = None
            logger.info(f"Customer departed at {distance:.1f}cm after {duration}ms")
            self._emit(EventType.CUSTOMER_DEPARTED, distance=distance, duration=duration)
        self._customer_present = detected

    # =========================================================================
    # Event Subscription
    # =========================================================================

    def subscribe(
        self,
        *event_types: Union[EventType, str],
    ) -> asyncio.Queue:
        """
        Subscribe to device events.

        Args:
            *event_types: Event types to receive (all when omitted).

        Returns:
            Queue receiving event dictionaries in arrival order.
        """
        queue: asyncio.Queue = asyncio.Queue()
        wanted = {EventType(t) for t in event_types} if event_types else None
        self._subscribers.append((wanted, queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Remove a subscription queue."""
        self._subscribers = [(w, q) for w, q in self._subscribers if q is not queue]

    def _emit(self, event_type: EventType, **data: Any) -> None:
        event = {"type": event_type, **data}
        for wanted, queue in self._subscribers:
            if wanted is None or event_type in wanted:
                queue.put_nowait(event)
        if self._publisher:
            self._publisher.publish_nowait(event_type, **data)

    # =========================================================================
    # Inbound Handling
    # =========================================================================

    def _on_message(self, line: str) -> None:
        """Classify a framed line, apply it, then offer it to the correlator."""
        event = classify(line)
        self._handle_event(event)
        if self._correlator:
            self._correlator.feed(line)

    def _handle_event(self, event: Event) -> None:
        if isinstance(event, SensorEvent):
            if self._store.apply(event):
                logger.info(
                    f"Sensor distance: {event.distance}cm, detected: {event.is_detected}"
                )
                self._emit(
                    EventType.SENSOR_UPDATE,
                    distance=event.distance,
                    isInRange=event.is_detected,
                    timestamp=event.timestamp,
                )
        elif isinstance(event, ControllerStateEvent):
            if self._store.apply(event):
                logger.info(f"Controller state update: {event.device} = {event.is_on}")
                self._emit(EventType.CONTROLLER_STATE, device=event.device, state=event.is_on)
        elif isinstance(event, MatrixAckEvent):
            logger.info(f"Matrix button {event.button_id} acknowledged")
            self._emit(EventType.MATRIX_ACK, buttonId=event.button_id)
        elif isinstance(event, FirmwareStatusEvent):
            self._store.apply(event)
            if event.ready:
                logger.info("Firmware status: ready")
            if event.version:
                logger.info(f"Firmware version: {event.version}")
            self._emit(EventType.FIRMWARE_STATUS, ready=event.ready, version=event.version)
        elif isinstance(event, DiagnosticEvent):
            logger.debug(f"Matrix signal: {event.message}")
        elif isinstance(event, Unrecognized):
            logger.warning(f"Unrecognized controller line ({event.reason}): {event.raw!r}")

    def _on_close(self, error: Optional[BaseException]) -> None:
        """Transport closed, either by disconnect() or underneath us."""
        if self._correlator:
            self._correlator.reject_all()
        if self._transport is not None:
            logger.error(f"Controller line lost: {error or 'closed'}")
            self._transport = None
            self._correlator = None
        self._phase = ControllerPhase.DISCONNECTED
        self._emit(EventType.DISCONNECTED, port=self._port)
