"""
API Facade - Unified interface for the kiosk device layer.

Every operation returns a {success, message, data} dictionary so the
command handler can relay it to the UI process unchanged.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from redis.asyncio import Redis

from ..core.exceptions import KioskDeviceError
from ..core.interfaces import CashHandler
from ..domain.hardware_controller import HardwareController
from ..domain.payment_terminals import (
    CardPaymentTerminal,
    CashPaymentTerminal,
    QRPaymentTerminal,
)
from ..event_system import EventConsumer, EventPublisher, EventType
from ..infrastructure.cash_handler import RedisCashHandler
from ..loggers import logger
from ..send_to_ws import send_to_ws
from .payment_service import PaymentService


Notifier = Callable[[str, Optional[dict[str, Any]]], Awaitable[bool]]

# Device events forwarded to the UI, by WebSocket event name
WS_EVENTS: dict[EventType, str] = {
    EventType.MATRIX_ACK: "matrixAck",
    EventType.SENSOR_UPDATE: "sensorUpdate",
    EventType.CONTROLLER_STATE: "controllerState",
    EventType.FIRMWARE_STATUS: "firmwareStatus",
    EventType.CUSTOMER_APPROACH: "customerApproach",
    EventType.CUSTOMER_DEPARTED: "customerDeparted",
    EventType.CONNECTED: "hardwareConnected",
    EventType.DISCONNECTED: "hardwareDisconnected",
}


def _ok(message: str, data: Any = None) -> dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def _fail(message: str, data: Any = None) -> dict[str, Any]:
    return {"success": False, "message": message, "data": data}


class KioskDeviceFacade:
    """
    Facade for the kiosk device layer.

    Owns the event queue shared by the hardware controller and the
    WebSocket forwarder, the hardware controller itself, and the
    payment service with its terminals.
    """

    def __init__(
        self,
        redis: Optional[Redis] = None,
        hardware: Optional[HardwareController] = None,
        payment_service: Optional[PaymentService] = None,
        cash_handler: Optional[CashHandler] = None,
        notifier: Notifier = send_to_ws,
        event_queue: Optional[asyncio.Queue] = None,
    ) -> None:
        """
        Initialize the facade.

        Args:
            redis: Redis client, used for the cash handler IPC.
            hardware: Hardware controller (built with the shared publisher
                when omitted).
            payment_service: Payment service (card, QR and cash terminals
                when omitted).
            cash_handler: Cash handler (Redis client when omitted and a
                Redis client is given).
            notifier: Coroutine forwarding events to the UI.
            event_queue: Queue shared with a hardware controller built
                by the caller.
        """
        self._redis = redis
        self._notifier = notifier

        # Event system
        self._event_queue: asyncio.Queue = event_queue or asyncio.Queue()
        self._event_publisher = EventPublisher(self._event_queue)
        self._event_consumer = EventConsumer(self._event_queue)
        self._register_event_handlers()

        # Services
        self._hardware = hardware or HardwareController(publisher=self._event_publisher)
        if cash_handler is None and redis is not None:
            cash_handler = RedisCashHandler(redis)
        self._payment_service = payment_service or PaymentService(
            [
                CardPaymentTerminal(),
                QRPaymentTerminal(),
                CashPaymentTerminal(cash_handler),
            ]
        )

    @property
    def hardware(self) -> HardwareController:
        """Get the hardware controller."""
        return self._hardware

    @property
    def payment_service(self) -> PaymentService:
        """Get the payment service."""
        return self._payment_service

    @property
    def event_consumer(self) -> EventConsumer:
        """Get the event consumer."""
        return self._event_consumer

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start forwarding device events."""
        await self._event_consumer.start_consuming()

    async def shutdown(self) -> None:
        """Disconnect all devices and stop event forwarding."""
        try:
            await self._hardware.disconnect()
            await self._payment_service.disconnect_all()
        finally:
            await self._event_consumer.stop_consuming()
        logger.info("Kiosk device layer shut down")

    def _register_event_handlers(self) -> None:
        for event_type in WS_EVENTS:
            self._event_consumer.register_handler(event_type, self._forward_event)

    async def _forward_event(self, event: dict[str, Any]) -> None:
        event_type = EventType(event["type"])
        data = {k: v for k, v in event.items() if k != "type"}
        await self._notifier(WS_EVENTS[event_type], data)

    # =========================================================================
    # Hardware Controller
    # =========================================================================

    async def init_hardware(self, port_path: Optional[str] = None) -> dict[str, Any]:
        """Open the controller board line."""
        connected = await self._hardware.initialize(port_path)
        if connected:
            return _ok(f"Hardware connected on {self._hardware.port}", self._hardware.get_status())
        return _fail(f"Hardware connection failed on {self._hardware.port}")

    async def disconnect_hardware(self) -> dict[str, Any]:
        """Close the controller board line."""
        await self._hardware.disconnect()
        return _ok("Hardware disconnected")

    async def hardware_status(self) -> dict[str, Any]:
        """Get controller connection status and device state."""
        return _ok("Hardware status", self._hardware.get_status())

    async def send_matrix_button(self, button: int) -> dict[str, Any]:
        """Press a matrix button."""
        try:
            result = await self._hardware.send_matrix_button(button)
        except KioskDeviceError as e:
            logger.warning(f"Matrix button {button} rejected: {e.message}")
            return _fail(e.message, e.to_dict())
        return _ok(f"Matrix button {button} sent", result)

    async def read_distance(self) -> dict[str, Any]:
        """Read the proximity sensor distance."""
        distance = await self._hardware.read_distance()
        sensor = self._hardware.state.sensor
        return _ok(
            "Distance read",
            {
                "distance": distance,
                "isDetected": sensor.is_detected if self._hardware.is_connected else None,
                "simulated": not self._hardware.is_connected,
            },
        )

    async def start_monitoring(self, interval: float = 1.0) -> dict[str, Any]:
        """Start periodic distance monitoring."""
        if await self._hardware.start_monitoring(interval):
            await self._event_consumer.start_consuming()
            return _ok("Distance monitoring started")
        return _fail("Distance monitoring already running")

    async def stop_monitoring(self) -> dict[str, Any]:
        """Stop periodic distance monitoring."""
        await self._hardware.stop_monitoring()
        return _ok("Distance monitoring stopped")

    async def control_led(self, led: int, state: bool) -> dict[str, Any]:
        """Switch an LED."""
        await self._hardware.control_led(led, bool(state))
        return _ok(
            f"LED {led} {'on' if state else 'off'}",
            {"led": led, "state": bool(state), "simulated": True},
        )

    async def control_motor(self, angle: int, speed: int = 50) -> dict[str, Any]:
        """Rotate the motor."""
        await self._hardware.control_motor(angle, speed)
        return _ok(
            f"Motor rotated {angle} deg",
            {"angle": angle, "speed": speed, "simulated": True},
        )

    async def check_firmware(self, timeout: Optional[float] = None) -> dict[str, Any]:
        """Send STATUS and wait for the firmware to report ready."""
        if not self._hardware.is_connected:
            return _fail("Hardware is not connected")
        if timeout is None:
            ready = await self._hardware.request_status()
        else:
            ready = await self._hardware.request_status(float(timeout))
        firmware = self._hardware.get_status()["firmware"]
        if ready:
            return _ok("Firmware ready", firmware)
        return _fail("Firmware did not report ready", firmware)

    # =========================================================================
    # Payments
    # =========================================================================

    async def initialize_terminal(self, method: str) -> dict[str, Any]:
        """Connect the terminal for a payment method."""
        try:
            connected = await self._payment_service.initialize_terminal(method)
        except KioskDeviceError as e:
            return _fail(e.message, e.to_dict())
        if connected:
            return _ok(f"Terminal {method} connected")
        return _fail(f"Terminal {method} connection failed")

    async def process_payment(self, order: dict[str, Any]) -> dict[str, Any]:
        """Process an order with the terminal for its payment method."""
        response = await self._payment_service.process_payment(order)
        message = "Payment approved" if response.success else (response.error or "Payment failed")
        return {"success": response.success, "message": message, "data": response.to_dict()}

    async def cancel_payment(self, method: str, transaction_id: str) -> dict[str, Any]:
        """Cancel a transaction."""
        response = await self._payment_service.cancel_payment(method, transaction_id)
        message = "Payment cancelled" if response.success else (response.error or "Cancel failed")
        return {"success": response.success, "message": message, "data": response.to_dict()}

    async def get_terminal_status(self, method: str) -> dict[str, Any]:
        """Get one terminal's status."""
        status = await self._payment_service.get_terminal_status(method)
        return _ok(f"Terminal {method}: {status.value}", {"method": method, "status": status.value})

    async def get_all_terminal_status(self) -> dict[str, Any]:
        """Get every terminal's status."""
        statuses = await self._payment_service.get_all_terminal_status()
        return _ok("Terminal status", {method: status.value for method, status in statuses.items()})

    async def disconnect_all(self) -> dict[str, Any]:
        """Disconnect every payment terminal."""
        await self._payment_service.disconnect_all()
        return _ok("All terminals disconnected")
