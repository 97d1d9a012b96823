"""
Line Framer.

Splits an inbound serial byte stream into delimiter-terminated messages.
Partial reads are buffered until the delimiter arrives; a single read
carrying several messages yields each of them in arrival order.
"""

import logging

from ..configs import MAX_LINE_LENGTH


logger = logging.getLogger(__name__)


class LineFramer:
    """
    Delimiter-based framer for ASCII line protocols.

    Attributes:
        delimiter: Byte sequence terminating each message.
        encoding: Text encoding of message payloads.
        max_length: Maximum buffered bytes before the buffer is dropped.
    """

    def __init__(
        self,
        delimiter: bytes = b"\n",
        encoding: str = "ascii",
        max_length: int = MAX_LINE_LENGTH,
    ) -> None:
        if not delimiter:
            raise ValueError("Delimiter must not be empty")
        self._delimiter = delimiter
        self._encoding = encoding
        self._max_length = max_length
        self._buffer = bytearray()

    @property
    def delimiter(self) -> bytes:
        """Get the message delimiter."""
        return self._delimiter

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet terminated by the delimiter."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """
        Feed a physical read into the framer.

        Args:
            chunk: Raw bytes as read from the transport.

        Returns:
            Complete messages, delimiter and surrounding whitespace
            trimmed, in arrival order. Blank lines are skipped.
        """
        self._buffer.extend(chunk)
        messages: list[str] = []

        while True:
            index = self._buffer.find(self._delimiter)
            if index < 0:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[:index + len(self._delimiter)]

            text = raw.decode(self._encoding, errors="replace").strip()
            if text:
                messages.append(text)

        if len(self._buffer) > self._max_length:
            logger.warning(
                f"Line buffer overflow ({len(self._buffer)} bytes), dropping partial data"
            )
            self._buffer.clear()

        return messages

    def reset(self) -> None:
        """Discard any buffered partial message."""
        self._buffer.clear()
