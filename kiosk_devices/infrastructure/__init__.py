"""
Infrastructure layer - External dependencies and implementations.

Contains:
- Configuration
- Cash handler IPC client (infrastructure.cash_handler)
- Log sanitization (infrastructure.sanitizer)
"""

from .settings import (
    Settings,
    get_settings,
)


__all__ = [
    # Settings
    "Settings",
    "get_settings",
]
