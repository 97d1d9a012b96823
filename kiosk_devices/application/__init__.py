"""
Application layer - Application services and use cases.

Contains:
- Payment service
- Device facade
- Command handlers
"""

from .payment_service import PaymentService
from .api_facade import KioskDeviceFacade
from .command_handler import CommandHandler, CommandResponse


__all__ = [
    "PaymentService",
    "KioskDeviceFacade",
    "CommandHandler",
    "CommandResponse",
]
