"""
Command Handler - Routes Redis commands to facade methods.

Provides command routing with argument validation and error handling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from ..loggers import logger


# Type alias for command handlers
CommandHandlerFunc = Callable[..., Awaitable[dict[str, Any]]]


@dataclass
class CommandResponse:
    """
    Standardized response for command execution.

    Attributes:
        command_id: The ID of the executed command.
        success: Whether the command succeeded.
        message: Human-readable message.
        data: Optional response data.
    """

    command_id: Optional[Union[int, str]] = None
    success: bool = False
    message: Optional[str] = None
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert the response to a dictionary."""
        return {
            "command_id": self.command_id,
            "success": self.success,
            "message": self.message,
            "data": self.data,
        }


@dataclass
class CommandDefinition:
    """
    Definition of a command.

    Attributes:
        name: Command name.
        handler: Handler function.
        required_args: Argument names that must be present.
        optional_args: Argument names passed only when present.
        description: Human-readable description.
    """

    name: str
    handler: CommandHandlerFunc
    required_args: list[str]
    optional_args: list[str] = field(default_factory=list)
    description: str = ""


class CommandHandler:
    """
    Routes commands to their handlers on the device facade.
    """

    def __init__(self, api: Any) -> None:
        """
        Initialize the command handler.

        Args:
            api: The KioskDeviceFacade instance.
        """
        self._api = api
        self._commands: dict[str, CommandDefinition] = {}
        self._register_default_commands()

    def _register_default_commands(self) -> None:
        """Register all default command handlers."""
        # Hardware controller
        self.register(
            "init_hardware",
            self._api.init_hardware,
            [],
            "Open the controller board line",
            optional_args=["port_path"],
        )
        self.register(
            "disconnect_hardware",
            self._api.disconnect_hardware,
            [],
            "Close the controller board line",
        )
        self.register(
            "hardware_status",
            self._api.hardware_status,
            [],
            "Get controller status and device state",
        )
        self.register(
            "send_matrix_button",
            self._api.send_matrix_button,
            ["button"],
            "Press a matrix button (1-40)",
        )
        self.register(
            "read_distance",
            self._api.read_distance,
            [],
            "Read the proximity sensor distance",
        )
        self.register(
            "start_monitoring",
            self._api.start_monitoring,
            [],
            "Start periodic distance monitoring",
            optional_args=["interval"],
        )
        self.register(
            "stop_monitoring",
            self._api.stop_monitoring,
            [],
            "Stop periodic distance monitoring",
        )
        self.register(
            "control_led",
            self._api.control_led,
            ["led", "state"],
            "Switch an LED on or off (simulated on current firmware)",
        )
        self.register(
            "control_motor",
            self._api.control_motor,
            ["angle"],
            "Rotate the motor (simulated on current firmware)",
            optional_args=["speed"],
        )
        self.register(
            "check_firmware",
            self._api.check_firmware,
            [],
            "Probe the controller firmware with STATUS",
            optional_args=["timeout"],
        )

        # Payment terminals
        self.register(
            "initialize_terminal",
            self._api.initialize_terminal,
            ["method"],
            "Connect the terminal for a payment method",
        )
        self.register(
            "process_payment",
            self._api.process_payment,
            ["order"],
            "Process an order payment",
        )
        self.register(
            "cancel_payment",
            self._api.cancel_payment,
            ["method", "transaction_id"],
            "Cancel a transaction",
        )
        self.register(
            "get_terminal_status",
            self._api.get_terminal_status,
            ["method"],
            "Get one terminal's status",
        )
        self.register(
            "get_all_terminal_status",
            self._api.get_all_terminal_status,
            [],
            "Get every terminal's status",
        )
        self.register(
            "disconnect_all",
            self._api.disconnect_all,
            [],
            "Disconnect every payment terminal",
        )

    def register(
        self,
        command_name: str,
        handler: CommandHandlerFunc,
        required_args: list[str],
        description: str = "",
        optional_args: Optional[list[str]] = None,
    ) -> None:
        """
        Register a command handler.

        Args:
            command_name: The name of the command.
            handler: The async handler function.
            required_args: Argument names that must be present.
            description: Human-readable description.
            optional_args: Argument names passed only when present.
        """
        self._commands[command_name] = CommandDefinition(
            name=command_name,
            handler=handler,
            required_args=required_args,
            optional_args=optional_args or [],
            description=description,
        )

    def get_available_commands(self) -> list[dict[str, Any]]:
        """Get list of available commands with their descriptions."""
        return [
            {
                "name": cmd.name,
                "required_args": cmd.required_args,
                "optional_args": cmd.optional_args,
                "description": cmd.description,
            }
            for cmd in self._commands.values()
        ]

    async def execute(self, command_data: dict[str, Any]) -> dict[str, Any]:
        """
        Execute a command based on command data.

        Args:
            command_data: Dictionary containing 'command', 'command_id', and 'data'.

        Returns:
            Response dictionary with execution result.
        """
        command = command_data.get("command")
        command_id = command_data.get("command_id")
        data = command_data.get("data", {}) or {}

        response = CommandResponse(command_id=command_id)

        if command not in self._commands:
            logger.warning(f"Unknown command: {command}")
            response.message = f"Unknown command: {command}"
            return response.to_dict()

        if not isinstance(data, dict):
            response.message = "Command data must be an object"
            return response.to_dict()

        definition = self._commands[command]

        try:
            kwargs = {arg: data.get(arg) for arg in definition.required_args}

            missing = [arg for arg in definition.required_args if kwargs.get(arg) is None]
            if missing:
                response.message = f"Missing required arguments: {missing}"
                return response.to_dict()

            for arg in definition.optional_args:
                if data.get(arg) is not None:
                    kwargs[arg] = data[arg]

            result = await definition.handler(**kwargs)

            if isinstance(result, dict):
                response.success = result.get("success", False)
                response.message = result.get("message")
                response.data = result.get("data")
            else:
                response.success = True
                response.data = result

        except Exception as e:
            logger.error(f"Error executing command '{command}': {e}")
            response.success = False
            response.message = f"Error: {e}"

        return response.to_dict()
