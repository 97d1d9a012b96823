"""
WebSocket client for forwarding device events to the kiosk UI.
"""

import json
from typing import Any, Optional

import websockets
from websockets.exceptions import WebSocketException

from .infrastructure.settings import get_settings
from .loggers import logger


async def send_to_ws(
    event: str,
    data: Optional[dict[str, Any]] = None,
    ws_url: Optional[str] = None,
) -> bool:
    """
    Send an event to the UI WebSocket server.

    Args:
        event: The event name, e.g. 'matrixAck' or 'sensorUpdate'.
        data: Optional dictionary of event data.
        ws_url: WebSocket URL (default from settings).

    Returns:
        True if the message was sent, False otherwise.

    Example:
        await send_to_ws(event="matrixAck", data={"buttonId": 12})
    """
    message = {"event": event, "data": data}
    url = ws_url or get_settings().services.websocket_url

    try:
        async with websockets.connect(url) as ws:
            await ws.send(json.dumps(message))
            logger.debug(f"WebSocket message sent: {event}")
            return True
    except WebSocketException as e:
        logger.warning(f"WebSocket connection error: {e}")
        return False
    except OSError as e:
        logger.warning(f"WebSocket server unreachable: {e}")
        return False
