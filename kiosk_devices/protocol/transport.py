"""
Serial Line Transport.

Owns one serial line: opening and closing it, raw writes, and a reader
task that frames inbound bytes into lines and delivers them in arrival
order to the registered message handler.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import serial
import serial_asyncio

from ..configs import READ_CHUNK_SIZE
from ..core.exceptions import DeviceConnectionError, NotConnectedError, WriteError
from ..core.interfaces import CloseCallback, MessageCallback
from .framer import LineFramer


logger = logging.getLogger(__name__)


Connector = Callable[..., Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]]]


class SerialLineTransport:
    """
    Line-oriented transport over an async serial connection.

    Attributes:
        port: Serial port path.
        baudrate: Serial baudrate.
        name: Name used in logs and error details.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        delimiter: bytes = b"\n",
        name: str = "serial",
        bytesize: int = serial.EIGHTBITS,
        parity: str = serial.PARITY_NONE,
        stopbits: float = serial.STOPBITS_ONE,
        connector: Optional[Connector] = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            port: Serial port path (e.g., '/dev/ttyACM0').
            baudrate: Serial port baudrate.
            delimiter: Line delimiter for inbound framing.
            name: Name used in logs and error details.
            bytesize: Serial data bits.
            parity: Serial parity.
            stopbits: Serial stop bits.
            connector: Coroutine function returning (reader, writer);
                defaults to serial_asyncio.open_serial_connection.
        """
        self.port = port
        self.baudrate = baudrate
        self.name = name
        self._serial_options = {
            "bytesize": bytesize,
            "parity": parity,
            "stopbits": stopbits,
        }
        self._connector = connector or serial_asyncio.open_serial_connection
        self._framer = LineFramer(delimiter=delimiter)

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()
        self._closing = False

        self._on_message: Optional[MessageCallback] = None
        self._on_close: Optional[CloseCallback] = None

    @property
    def is_open(self) -> bool:
        """Check if the transport is open."""
        return self._writer is not None and not self._closing

    def set_handlers(
        self,
        on_message: Optional[MessageCallback] = None,
        on_close: Optional[CloseCallback] = None,
    ) -> None:
        """
        Register inbound callbacks.

        Args:
            on_message: Called with each framed message, in arrival order.
            on_close: Called once when the line closes, with the error if any.
        """
        self._on_message = on_message
        self._on_close = on_close

    async def open(self) -> None:
        """
        Open the serial line and start the reader task.

        Raises:
            DeviceConnectionError: If the port cannot be opened.
        """
        if self.is_open:
            return

        logger.info(f"[{self.name}] Opening {self.port} at {self.baudrate} baud")
        try:
            self._reader, self._writer = await self._connector(
                url=self.port,
                baudrate=self.baudrate,
                **self._serial_options,
            )
        except (serial.SerialException, OSError) as e:
            self._reader = self._writer = None
            raise DeviceConnectionError(
                f"Failed to open {self.port}: {e}",
                device_name=self.name,
                details={"port": self.port},
            ) from e

        self._closing = False
        self._framer.reset()
        self._read_task = asyncio.create_task(self._read_loop())

    async def write(self, data: bytes) -> None:
        """
        Write raw bytes to the line.

        Raises:
            NotConnectedError: If the transport is not open.
            WriteError: If the write fails.
        """
        if not self.is_open or self._writer is None:
            raise NotConnectedError(f"{self.port} is not open", device_name=self.name)

        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (serial.SerialException, OSError, ConnectionError) as e:
                raise WriteError(
                    f"Write to {self.port} failed: {e}",
                    device_name=self.name,
                ) from e
        logger.debug(f"[{self.name}] TX: {data!r}")

    async def close(self) -> None:
        """Close the line. Safe to call more than once."""
        if self._writer is None:
            return

        self._closing = True
        writer, self._writer = self._writer, None

        if self._read_task and self._read_task is not asyncio.current_task():
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
        self._read_task = None

        writer.close()
        try:
            await writer.wait_closed()
        except Exception as e:
            logger.debug(f"[{self.name}] Close error (ignored): {e}")

        logger.info(f"[{self.name}] Closed {self.port}")
        self._notify_closed(None)

    async def _read_loop(self) -> None:
        """Read chunks, frame them, and dispatch messages in order."""
        error: Optional[BaseException] = None
        try:
            while self._reader is not None:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    logger.warning(f"[{self.name}] EOF on {self.port}")
                    break
                for message in self._framer.feed(chunk):
                    self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except (serial.SerialException, OSError) as e:
            logger.error(f"[{self.name}] Read error on {self.port}: {e}")
            error = e

        # Line dropped underneath us
        if not self._closing:
            self._closing = True
            writer, self._writer = self._writer, None
            if writer is not None:
                writer.close()
            self._notify_closed(error)

    def _dispatch(self, message: str) -> None:
        logger.debug(f"[{self.name}] RX: {message!r}")
        if self._on_message:
            try:
                self._on_message(message)
            except Exception as e:
                logger.error(f"[{self.name}] Message handler error: {e}")

    def _notify_closed(self, error: Optional[BaseException]) -> None:
        if self._on_close:
            try:
                self._on_close(error)
            except Exception as e:
                logger.error(f"[{self.name}] Close handler error: {e}")
