"""
Command/Response Correlator.

Matches outbound commands to their eventual inbound responses under a
timeout. Pending requests are kept in registration order and every
inbound message goes to the first pending request whose predicate
accepts it (FIFO matching). Callers own predicate disambiguation.
"""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..core.exceptions import ConnectionLostError, ResponseTimeoutError


logger = logging.getLogger(__name__)


MessagePredicate = Callable[[str], bool]
Writer = Callable[[bytes], Awaitable[None]]


def any_message(message: str) -> bool:
    """Predicate accepting every inbound message."""
    return True


@dataclass
class PendingRequest:
    """
    A command waiting for its response.

    Attributes:
        id: Sequence number assigned at registration.
        predicate: Accepts the message that answers this request.
        deadline: Monotonic time after which the request times out.
        future: Resolved with the matching message, or failed.
        command: Command text, for diagnostics.
    """

    id: int
    predicate: MessagePredicate
    deadline: float
    future: asyncio.Future = field(repr=False)
    command: str = ""

    @property
    def done(self) -> bool:
        """Check if the request has been resolved or rejected."""
        return self.future.done()


class CommandCorrelator:
    """
    Correlates commands and responses on one transport.

    One correlator exists per transport; two correlators reading the same
    transport would double-consume messages.

    Attributes:
        name: Name used in log messages and error details.
    """

    def __init__(self, writer: Writer, name: str = "transport") -> None:
        """
        Initialize the correlator.

        Args:
            writer: Coroutine function writing raw bytes to the transport.
            name: Name used in log messages and error details.
        """
        self._writer = writer
        self._name = name
        self._pending: list[PendingRequest] = []
        self._ids = itertools.count(1)

    @property
    def name(self) -> str:
        """Get the correlator name."""
        return self._name

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    def register(
        self,
        predicate: MessagePredicate,
        timeout: float,
        command: str = "",
    ) -> PendingRequest:
        """
        Register a pending request without writing anything.

        Args:
            predicate: Accepts the matching response.
            timeout: Seconds until the request times out.
            command: Command text, for diagnostics.

        Returns:
            The registered request.
        """
        loop = asyncio.get_running_loop()
        request = PendingRequest(
            id=next(self._ids),
            predicate=predicate,
            deadline=time.monotonic() + timeout,
            future=loop.create_future(),
            command=command,
        )
        self._pending.append(request)
        return request

    async def wait(self, request: PendingRequest) -> str:
        """
        Wait for a registered request to resolve.

        Raises:
            ResponseTimeoutError: If the deadline passes first.
            ConnectionLostError: If the transport closes first.
        """
        remaining = max(0.0, request.deadline - time.monotonic())
        try:
            return await asyncio.wait_for(asyncio.shield(request.future), timeout=remaining)
        except asyncio.TimeoutError:
            self._discard(request)
            if request.future.done() and not request.future.cancelled():
                # Resolved in the same loop iteration as the deadline
                return request.future.result()
            request.future.cancel()
            logger.warning(
                f"[{self._name}] No response to {request.command!r} "
                f"within {remaining:.1f}s (request #{request.id})"
            )
            raise ResponseTimeoutError(
                f"No response within {remaining:.1f}s",
                device_name=self._name,
                details={"command": request.command, "request_id": request.id},
            )
        except asyncio.CancelledError:
            self._discard(request)
            if not request.future.done():
                request.future.cancel()
            raise

    async def expect(self, predicate: MessagePredicate, timeout: float) -> str:
        """
        Wait for the next inbound message satisfying predicate.

        Args:
            predicate: Accepts the expected message.
            timeout: Seconds to wait.

        Returns:
            The matching message.
        """
        return await self.wait(self.register(predicate, timeout))

    async def send(
        self,
        command: str,
        predicate: MessagePredicate = any_message,
        timeout: float = 5.0,
        terminator: str = "\n",
    ) -> str:
        """
        Write a command and wait for its response.

        The request is registered before the write so a fast reply is
        never missed. A timeout does not cancel the write.

        Args:
            command: Command text without terminator.
            predicate: Accepts the matching response.
            timeout: Seconds to wait for the response.
            terminator: Line terminator appended to the command.

        Returns:
            The matching response message.

        Raises:
            ResponseTimeoutError: If no matching message arrives in time.
            ConnectionLostError: If the transport closes while waiting.
            WriteError: If the write itself fails.
        """
        request = self.register(predicate, timeout, command)
        try:
            await self._writer((command + terminator).encode("ascii"))
        except BaseException:
            self._discard(request)
            request.future.cancel()
            raise
        logger.debug(f"[{self._name}] TX {command!r} (request #{request.id})")
        return await self.wait(request)

    def feed(self, message: str) -> bool:
        """
        Offer an inbound message to the pending requests.

        Args:
            message: One framed inbound message.

        Returns:
            True if a pending request consumed the message.
        """
        for request in list(self._pending):
            if request.done:
                self._discard(request)
                continue
            try:
                matched = request.predicate(message)
            except Exception as e:
                logger.error(f"[{self._name}] Predicate error for request #{request.id}: {e}")
                continue
            if matched:
                self._discard(request)
                request.future.set_result(message)
                logger.debug(f"[{self._name}] RX {message!r} -> request #{request.id}")
                return True
        return False

    def reject_all(self, error: Optional[BaseException] = None) -> int:
        """
        Fail every pending request, typically on transport close.

        Args:
            error: Exception to fail with (default ConnectionLostError).

        Returns:
            Number of requests rejected.
        """
        pending, self._pending = self._pending, []
        rejected = 0
        for request in pending:
            if request.done:
                continue
            exc = error or ConnectionLostError(
                "Transport closed with requests pending",
                device_name=self._name,
                details={"command": request.command, "request_id": request.id},
            )
            request.future.set_exception(exc)
            rejected += 1
        if rejected:
            logger.warning(f"[{self._name}] Rejected {rejected} pending request(s)")
        return rejected

    def _discard(self, request: PendingRequest) -> None:
        try:
            self._pending.remove(request)
        except ValueError:
            pass
