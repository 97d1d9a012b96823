"""
Unit tests for the command handler and the device facade.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from kiosk_devices.application.api_facade import KioskDeviceFacade
from kiosk_devices.application.command_handler import CommandHandler, CommandResponse
from kiosk_devices.application.payment_service import PaymentService
from kiosk_devices.core.value_objects import PaymentMethod, TerminalStatus
from kiosk_devices.domain.hardware_controller import HardwareController
from kiosk_devices.event_system import EventPublisher

from conftest import StubTerminal


# =============================================================================
# Command Handler Tests
# =============================================================================


class TestCommandHandler:
    """Tests for CommandHandler routing and validation."""

    @pytest.fixture
    def api(self):
        return AsyncMock()

    @pytest.fixture
    def handler(self, api):
        return CommandHandler(api)

    def test_command_response_to_dict(self):
        response = CommandResponse(command_id=3, success=True, message="ok", data={"a": 1})
        assert response.to_dict() == {
            "command_id": 3,
            "success": True,
            "message": "ok",
            "data": {"a": 1},
        }

    def test_available_commands(self, handler):
        names = {cmd["name"] for cmd in handler.get_available_commands()}
        assert {
            "init_hardware",
            "disconnect_hardware",
            "hardware_status",
            "send_matrix_button",
            "read_distance",
            "process_payment",
            "cancel_payment",
            "get_terminal_status",
            "get_all_terminal_status",
            "initialize_terminal",
            "disconnect_all",
            "control_led",
            "control_motor",
            "check_firmware",
        } <= names

    @pytest.mark.asyncio
    async def test_unknown_command(self, handler):
        result = await handler.execute({"command": "reboot", "command_id": 1})
        assert result["success"] is False
        assert result["command_id"] == 1
        assert "Unknown command" in result["message"]

    @pytest.mark.asyncio
    async def test_missing_arguments(self, handler, api):
        result = await handler.execute({"command": "cancel_payment", "command_id": 2, "data": {"method": "card"}})

        assert result["success"] is False
        assert "transaction_id" in result["message"]
        api.cancel_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_relays_handler_result(self, handler, api):
        api.send_matrix_button.return_value = {"success": True, "message": "sent", "data": {"button": 5}}

        result = await handler.execute({"command": "send_matrix_button", "command_id": 4, "data": {"button": 5}})

        api.send_matrix_button.assert_awaited_once_with(button=5)
        assert result == {"command_id": 4, "success": True, "message": "sent", "data": {"button": 5}}

    @pytest.mark.asyncio
    async def test_optional_arguments(self, handler, api):
        api.init_hardware.return_value = {"success": True, "message": "ok", "data": None}

        await handler.execute({"command": "init_hardware", "command_id": 5})
        await handler.execute({"command": "init_hardware", "command_id": 6, "data": {"port_path": "/dev/ttyUSB0"}})

        assert api.init_hardware.await_args_list[0].kwargs == {}
        assert api.init_hardware.await_args_list[1].kwargs == {"port_path": "/dev/ttyUSB0"}

    @pytest.mark.asyncio
    async def test_handler_exception(self, handler, api):
        api.read_distance.side_effect = RuntimeError("boom")

        result = await handler.execute({"command": "read_distance", "command_id": 7})

        assert result["success"] is False
        assert result["message"] == "Error: boom"

    @pytest.mark.asyncio
    async def test_non_object_data(self, handler):
        result = await handler.execute({"command": "read_distance", "command_id": 8, "data": [1, 2]})
        assert result["success"] is False


# =============================================================================
# Facade Tests
# =============================================================================


class TestKioskDeviceFacade:
    """Tests for KioskDeviceFacade over fakes."""

    @pytest.fixture
    def notifier(self):
        return AsyncMock(return_value=True)

    @pytest.fixture
    def facade(self, transport_factory, notifier):
        service = PaymentService(
            [
                StubTerminal(PaymentMethod.CARD),
                StubTerminal(PaymentMethod.QR, status=TerminalStatus.DISCONNECTED),
            ]
        )
        queue: asyncio.Queue = asyncio.Queue()
        hardware = HardwareController(
            publisher=EventPublisher(queue),
            transport_factory=transport_factory,
        )
        return KioskDeviceFacade(
            hardware=hardware,
            payment_service=service,
            notifier=notifier,
            event_queue=queue,
        )

    @pytest.mark.asyncio
    async def test_matrix_ack_forwarded_to_ui(self, facade, fake_transport, notifier):
        await facade.start()
        assert (await facade.init_hardware())["success"] is True

        result = await facade.send_matrix_button(5)
        fake_transport.receive("BUTTON_5:SENT")

        for _ in range(100):
            if any(call.args[0] == "matrixAck" for call in notifier.await_args_list):
                break
            await asyncio.sleep(0.01)
        await facade.shutdown()

        assert result["data"] == {"button": 5}
        notifier.assert_any_await("matrixAck", {"buttonId": 5})

    @pytest.mark.asyncio
    async def test_invalid_button(self, facade):
        await facade.init_hardware()

        result = await facade.send_matrix_button(99)

        assert result["success"] is False
        assert result["data"]["error"] == "InvalidArgumentError"

    @pytest.mark.asyncio
    async def test_read_distance_simulated(self, facade):
        result = await facade.read_distance()
        assert result["data"]["simulated"] is True
        assert 20 <= result["data"]["distance"] < 120

    @pytest.mark.asyncio
    async def test_payment_commands(self, facade):
        paid = await facade.process_payment({"id": "O1", "total": 3000, "payment_method": "card"})
        unsupported = await facade.process_payment({"id": "O2", "total": 3000, "payment_method": "mobile"})

        assert paid["success"] is True
        assert paid["data"]["transactionId"] == "CARD-TX"
        assert unsupported["success"] is False
        assert unsupported["data"]["errorCode"] == "UNSUPPORTED_PAYMENT_METHOD"

    @pytest.mark.asyncio
    async def test_terminal_status_commands(self, facade):
        one = await facade.get_terminal_status("qr")
        everything = await facade.get_all_terminal_status()

        assert one["data"] == {"method": "qr", "status": "disconnected"}
        assert everything["data"] == {"card": "connected", "qr": "disconnected"}

    @pytest.mark.asyncio
    async def test_initialize_unknown_terminal(self, facade):
        result = await facade.initialize_terminal("mobile")
        assert result["success"] is False
        assert result["data"]["error"] == "UnsupportedMethodError"

    @pytest.mark.asyncio
    async def test_customer_approach_forwarded_to_ui(self, facade, notifier):
        facade.hardware.read_distance = AsyncMock(return_value=30.0)
        await facade.start()

        assert (await facade.start_monitoring(0.01))["success"] is True
        for _ in range(100):
            if any(call.args[0] == "customerApproach" for call in notifier.await_args_list):
                break
            await asyncio.sleep(0.01)
        await facade.shutdown()

        notifier.assert_any_await("customerApproach", {"distance": 30.0, "duration": 0})

    @pytest.mark.asyncio
    async def test_simulated_output_commands(self, facade):
        led = await facade.control_led(1, True)
        motor = await facade.control_motor(90)

        assert led["data"] == {"led": 1, "state": True, "simulated": True}
        assert motor["data"] == {"angle": 90, "speed": 50, "simulated": True}

    @pytest.mark.asyncio
    async def test_check_firmware(self, facade, fake_transport):
        assert (await facade.check_firmware())["success"] is False

        fake_transport.responder = lambda data: ["STATUS:READY"] if data == b"STATUS\n" else []
        await facade.init_hardware()
        result = await facade.check_firmware(timeout=1.0)

        assert result["success"] is True
        assert result["data"]["ready"] is True

    @pytest.mark.asyncio
    async def test_check_firmware_timeout(self, facade):
        await facade.init_hardware()

        result = await facade.check_firmware(timeout=0.05)

        assert result["success"] is False
