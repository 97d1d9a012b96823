"""
Cash handler client over Redis pub/sub.

Commands are published as JSON {command, command_id, data} on the cash
command channel; the cash service replies on <channel>_response with
{command_id, success, message, data}. Replies are matched by command_id.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..configs import CASH_COMMAND_TIMEOUT_S, CASH_REPLY_GRACE_S
from ..core.exceptions import DeviceConnectionError, PaymentError, ResponseTimeoutError
from ..core.value_objects import ErrorCode
from ..loggers import logger
from .settings import CommandSettings, get_settings


class RedisCashHandler:
    """
    CashHandler implementation talking to the cash service over Redis.

    Attributes:
        command_channel: Channel commands are published on.
        response_channel: Channel replies arrive on.
    """

    def __init__(
        self,
        redis: Redis,
        settings: Optional[CommandSettings] = None,
        command_timeout: float = CASH_COMMAND_TIMEOUT_S,
    ) -> None:
        """
        Initialize the cash handler client.

        Args:
            redis: Redis client (decode_responses=True).
            settings: Channel names (settings when omitted).
            command_timeout: Reply timeout for short commands.
        """
        commands = settings or get_settings().commands
        self._redis = redis
        self.command_channel = commands.cash_channel
        self.response_channel = commands.cash_response_channel
        self._command_timeout = command_timeout

    async def get_status(self) -> str:
        """Get the cash service status ('ready' when usable)."""
        reply = await self._request("cash_status", {}, self._command_timeout)
        data = reply.get("data") or {}
        if isinstance(data, dict) and data.get("status"):
            return str(data["status"])
        return "ready" if reply.get("success") else "error"

    async def wait_for_cash(self, amount: int, timeout_ms: int) -> dict[str, Any]:
        """
        Wait until at least amount has been inserted.

        Returns:
            Dictionary with success, received_amount, error, error_code.
        """
        timeout = timeout_ms / 1000 + CASH_REPLY_GRACE_S
        try:
            reply = await self._request(
                "wait_for_cash",
                {"amount": amount, "timeout_ms": timeout_ms},
                timeout,
            )
        except ResponseTimeoutError as e:
            return {
                "success": False,
                "received_amount": 0,
                "error": e.message,
                "error_code": ErrorCode.TIMEOUT.value,
            }

        data = reply.get("data") or {}
        return {
            "success": bool(reply.get("success")),
            "received_amount": int(data.get("received_amount", 0)),
            "error": data.get("error") or reply.get("message"),
            "error_code": data.get("error_code"),
        }

    async def dispense_change(self, amount: int) -> dict[str, Any]:
        """
        Dispense change.

        Raises:
            PaymentError: If the cash service reports a failure.
        """
        reply = await self._request("dispense_change", {"amount": amount}, self._command_timeout)
        if not reply.get("success"):
            raise PaymentError(
                reply.get("message") or "Change dispensing failed",
                details={"amount": amount},
            )
        return reply.get("data") or {}

    # =========================================================================
    # Request/Reply
    # =========================================================================

    async def _request(self, command: str, data: dict[str, Any], timeout: float) -> dict[str, Any]:
        """
        Publish a command and wait for the reply with the same command_id.

        The reply channel is subscribed before publishing so a fast reply
        is never missed.
        """
        command_id = uuid.uuid4().hex
        payload = json.dumps({"command": command, "command_id": command_id, "data": data})

        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(self.response_channel)
            await self._redis.publish(self.command_channel, payload)
            logger.debug(f"Cash command sent: {command} ({command_id})")
            return await asyncio.wait_for(self._await_reply(pubsub, command_id), timeout)
        except asyncio.TimeoutError:
            logger.error(f"Cash command {command} timed out after {timeout:.1f}s")
            raise ResponseTimeoutError(
                f"No reply to {command} within {timeout:.1f}s",
                device_name="cash_handler",
                details={"command": command, "command_id": command_id},
            )
        except RedisError as e:
            logger.error(f"Cash command {command} failed: {e}")
            raise DeviceConnectionError(f"Redis error: {e}", device_name="cash_handler")
        finally:
            await pubsub.unsubscribe(self.response_channel)
            await pubsub.aclose()

    async def _await_reply(self, pubsub: Any, command_id: str) -> dict[str, Any]:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                reply = json.loads(message.get("data"))
            except (TypeError, json.JSONDecodeError) as e:
                logger.warning(f"Malformed cash reply ignored: {e}")
                continue
            if isinstance(reply, dict) and reply.get("command_id") == command_id:
                return reply
        raise DeviceConnectionError("Cash reply stream closed", device_name="cash_handler")
