"""
Event system for the kiosk device layer.

This module provides a publish-subscribe event system for out-of-band
device events like matrix button acknowledgments, sensor updates and
controller state changes.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Union


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """
    Enumeration of event types in the device layer.

    These events are published when device state changes occur.
    """

    MATRIX_ACK = "matrix_ack"
    SENSOR_UPDATE = "sensor_update"
    CONTROLLER_STATE = "controller_state"
    FIRMWARE_STATUS = "firmware_status"
    CUSTOMER_APPROACH = "customer_approach"
    CUSTOMER_DEPARTED = "customer_departed"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class EventPublisher:
    """
    Publisher for sending events to the event queue.

    Attributes:
        event_queue: The asyncio queue to publish events to.
    """

    def __init__(self, event_queue: asyncio.Queue) -> None:
        self.event_queue = event_queue

    async def publish(self, event_type: Union[EventType, str], **data: Any) -> None:
        """
        Publish an event to the queue.

        Args:
            event_type: The type of event to publish.
            **data: Additional event data as keyword arguments.
        """
        await self.event_queue.put({"type": event_type, **data})

    def publish_nowait(self, event_type: Union[EventType, str], **data: Any) -> None:
        """Publish from synchronous code such as transport callbacks."""
        self.event_queue.put_nowait({"type": event_type, **data})


class EventConsumer:
    """
    Consumer for processing events from the event queue.

    Handles event dispatch to registered handlers based on event type.

    Attributes:
        event_queue: The asyncio queue to consume events from.
        handlers: Mapping of event types to their handler functions.
        is_consuming: Flag indicating if the consumer is active.
    """

    def __init__(self, event_queue: asyncio.Queue) -> None:
        self.event_queue = event_queue
        self.handlers: dict[Union[EventType, str], list[Callable]] = {}
        self.is_consuming = False
        self._consume_task: asyncio.Task | None = None

    def register_handler(
        self,
        event_type: Union[EventType, str],
        handler: Callable,
    ) -> None:
        """
        Register a handler for an event type.

        Args:
            event_type: The event type to handle.
            handler: The handler function (sync or async).
        """
        self.handlers.setdefault(event_type, []).append(handler)

    def unregister_handler(
        self,
        event_type: Union[EventType, str],
        handler: Callable,
    ) -> None:
        """Unregister a handler for an event type."""
        if event_type in self.handlers:
            try:
                self.handlers[event_type].remove(handler)
            except ValueError:
                pass

    async def process_event(self, event: dict[str, Any]) -> None:
        """
        Process a single event by calling all registered handlers.

        Args:
            event: The event dictionary containing type and data.
        """
        event_type = event.get("type")
        handlers = self.handlers.get(event_type, [])
        if not handlers:
            return

        async_handlers = [h for h in handlers if asyncio.iscoroutinefunction(h)]
        sync_handlers = [h for h in handlers if not asyncio.iscoroutinefunction(h)]

        if async_handlers:
            results = await asyncio.gather(
                *(handler(event) for handler in async_handlers),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Handler error for {event_type}: {result}")

        for handler in sync_handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler error for {event_type}: {e}")

    async def _consume_loop(self) -> None:
        """Main consumption loop that processes events from the queue."""
        while self.is_consuming:
            try:
                event = await asyncio.wait_for(self.event_queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            try:
                await self.process_event(event)
            except Exception as e:
                logger.error(f"Event processing error: {e}")
            finally:
                self.event_queue.task_done()

    async def start_consuming(self) -> None:
        """Start the event consumption loop."""
        if self.is_consuming:
            return

        self.is_consuming = True
        self._consume_task = asyncio.create_task(self._consume_loop())

    async def stop_consuming(self) -> None:
        """Stop the event consumption loop."""
        self.is_consuming = False

        if self._consume_task:
            self._consume_task.cancel()
            try:
                await self._consume_task
            except asyncio.CancelledError:
                pass
            self._consume_task = None
