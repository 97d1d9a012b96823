"""
Kiosk device layer - Main entry point.

Connects the controller board and payment terminals, then serves
commands from the UI process over Redis pub/sub.
"""

import asyncio
import json
from typing import Any

from redis.asyncio import Redis

from .application.api_facade import KioskDeviceFacade
from .application.command_handler import CommandHandler
from .infrastructure.settings import get_settings
from .loggers import logger


# =============================================================================
# Startup
# =============================================================================


async def init_devices(api: KioskDeviceFacade) -> dict[str, Any]:
    """
    Connect the controller board and every payment terminal.

    Devices that fail to connect are reported, not fatal: the controller
    falls back to simulated mode and terminals can be retried with
    initialize_terminal.
    """
    results: dict[str, Any] = {"hardware": (await api.init_hardware())["success"]}
    for method in api.payment_service.registry.methods():
        results[method] = (await api.initialize_terminal(method))["success"]
    logger.info(f"Device initialization: {results}")
    return results


# =============================================================================
# Redis Command Listener
# =============================================================================


async def listen_to_redis(redis: Redis, api: KioskDeviceFacade) -> None:
    """
    Listen for commands on Redis pub/sub and process them.

    Args:
        redis: Redis client instance.
        api: KioskDeviceFacade instance for command execution.
    """
    settings = get_settings().commands
    handler = CommandHandler(api)

    pubsub = redis.pubsub()
    await pubsub.subscribe(settings.command_channel)
    logger.info(f"Listening for commands on channel: {settings.command_channel}")

    async for message in pubsub.listen():
        if message.get("type") != "message":
            continue

        raw_data = message.get("data")

        if raw_data == "ping":
            continue

        try:
            command = json.loads(raw_data)
            logger.info(f"Received command: {command.get('command')}")

            response = await handler.execute(command)

            await redis.publish(settings.response_channel, json.dumps(response))
            logger.info(f"Response sent to {settings.response_channel}: {response.get('success')}")

        except json.JSONDecodeError as e:
            logger.error(f"Command parsing error: {e}")
        except Exception as e:
            logger.error(f"Unexpected error processing command: {e}")


# =============================================================================
# Main Entry Point
# =============================================================================


async def main() -> None:
    """
    Main entry point for the kiosk device service.

    Builds the facade, connects the devices and serves commands until
    cancelled, then disconnects everything.
    """
    settings = get_settings()

    redis = Redis(
        host=settings.redis.host,
        port=settings.redis.port,
        decode_responses=settings.redis.decode_responses,
    )

    api = KioskDeviceFacade(redis)
    await api.start()

    try:
        await init_devices(api)
        await listen_to_redis(redis, api)
    finally:
        await api.shutdown()
        await redis.aclose()


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")


if __name__ == "__main__":
    run()
