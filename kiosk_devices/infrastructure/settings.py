"""
Application settings.

Frozen dataclass sections with defaults from configs, overridable
through KIOSK_* environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .. import configs


# =============================================================================
# Configuration Classes
# =============================================================================


@dataclass(frozen=True)
class RedisSettings:
    """Redis connection settings."""

    host: str = configs.REDIS_HOST
    port: int = configs.REDIS_PORT
    decode_responses: bool = True


@dataclass(frozen=True)
class SerialPortSettings:
    """Serial line configuration for one device."""

    port: str
    baudrate: int
    bytesize: int = 8
    stopbits: int = 1
    parity: str = "N"


@dataclass(frozen=True)
class ServiceSettings:
    """External service URLs."""

    loki_url: Optional[str] = None
    websocket_url: str = configs.WS_URL


@dataclass(frozen=True)
class QRPaySettings:
    """QR payment API settings."""

    base_url: str = configs.QR_API_BASE_URL
    api_key: str = ""
    timeout: float = 10.0


@dataclass(frozen=True)
class CommandSettings:
    """Redis pub/sub command surface."""

    command_channel: str = "kiosk_device_commands"
    cash_channel: str = configs.CASH_COMMAND_CHANNEL

    @property
    def response_channel(self) -> str:
        """Get response channel name."""
        return f"{self.command_channel}_response"

    @property
    def cash_response_channel(self) -> str:
        """Get cash handler response channel name."""
        return f"{self.cash_channel}_response"


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """
    Main application settings.

    Aggregates all configuration sections.
    """

    log_file: str = configs.DEFAULT_LOG_FILE
    redis: RedisSettings = field(default_factory=RedisSettings)
    hardware: SerialPortSettings = field(
        default_factory=lambda: SerialPortSettings(
            port=configs.HARDWARE_PORT,
            baudrate=configs.HARDWARE_BAUDRATE,
        )
    )
    card_terminal: SerialPortSettings = field(
        default_factory=lambda: SerialPortSettings(
            port=configs.CARD_TERMINAL_PORT,
            baudrate=configs.CARD_TERMINAL_BAUDRATE,
        )
    )
    services: ServiceSettings = field(default_factory=ServiceSettings)
    qr_pay: QRPaySettings = field(default_factory=QRPaySettings)
    commands: CommandSettings = field(default_factory=CommandSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings, applying KIOSK_* environment overrides."""
        env = os.environ
        return cls(
            log_file=env.get("KIOSK_LOG_FILE", configs.DEFAULT_LOG_FILE),
            redis=RedisSettings(
                host=env.get("KIOSK_REDIS_HOST", configs.REDIS_HOST),
                port=int(env.get("KIOSK_REDIS_PORT", configs.REDIS_PORT)),
            ),
            hardware=SerialPortSettings(
                port=env.get("KIOSK_HARDWARE_PORT", configs.HARDWARE_PORT),
                baudrate=int(env.get("KIOSK_HARDWARE_BAUDRATE", configs.HARDWARE_BAUDRATE)),
            ),
            card_terminal=SerialPortSettings(
                port=env.get("KIOSK_CARD_PORT", configs.CARD_TERMINAL_PORT),
                baudrate=int(env.get("KIOSK_CARD_BAUDRATE", configs.CARD_TERMINAL_BAUDRATE)),
            ),
            services=ServiceSettings(
                loki_url=env.get("KIOSK_LOKI_URL") or None,
                websocket_url=env.get("KIOSK_WS_URL", configs.WS_URL),
            ),
            qr_pay=QRPaySettings(
                base_url=env.get("KIOSK_QR_PAY_URL", configs.QR_API_BASE_URL),
                api_key=env.get("KIOSK_QR_PAY_API_KEY", ""),
            ),
        )


# =============================================================================
# Settings Singleton
# =============================================================================


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
