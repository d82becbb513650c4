"""Frame builder, parser and stream reassembler for the MagPro serial link.

Frame layout::

    +-----------+--------+-----------------+--------+----------+
    | StartFlag | Length |      Body       |  CRC8  | EndFlag  |
    |  1 byte   | 1 byte |  Length bytes   | 1 byte |  1 byte  |
    +-----------+--------+-----------------+--------+----------+

- StartFlag: 0xFE
- Length: number of body bytes
- Body: message ID followed by message-specific data
- CRC8: Dallas/Maxim CRC-8 of the body
- EndFlag: 0xFF
"""

from __future__ import annotations

import logging

from ..errors import ChecksumError, FramingError
from ..utils.crc import crc8

logger = logging.getLogger(__name__)

START_FLAG = 0xFE
END_FLAG = 0xFF
FRAME_OVERHEAD = 4  # start + length + crc + end
MAX_BODY_SIZE = 0xFF


def build_frame(body: bytes) -> bytes:
    """Wrap a message body into a frame ready to write to the serial port.

    Args:
        body: Command ID followed by its parameters.
    """
    if not body:
        raise ValueError("Frame body must not be empty")
    if len(body) > MAX_BODY_SIZE:
        raise ValueError(f"Frame body must be at most {MAX_BODY_SIZE} bytes, got {len(body)}")
    return bytes([START_FLAG, len(body)]) + body + bytes([crc8(body), END_FLAG])


def check_frame(data: bytes) -> bytes:
    """Validate a complete frame at the start of ``data`` and return its body.

    Raises:
        FramingError: If the start flag, length or end flag is wrong.
        ChecksumError: If the CRC does not validate.
    """
    if len(data) < FRAME_OVERHEAD or data[0] != START_FLAG:
        raise FramingError("Missing start flag")

    length = data[1]
    if len(data) < length + FRAME_OVERHEAD:
        raise FramingError(f"Truncated frame, expected {length + FRAME_OVERHEAD} bytes")

    body = bytes(data[2 : 2 + length])
    checksum = data[2 + length]
    if data[3 + length] != END_FLAG:
        raise FramingError("Missing end flag")
    if crc8(body, checksum) != 0:
        raise ChecksumError(f"CRC mismatch for body {body.hex(' ')}")
    return body


def parse_frame(data: bytes) -> bytes | None:
    """Parse a single frame.

    Returns:
        The frame body, or ``None`` if the frame is malformed or the
        checksum fails.
    """
    try:
        return check_frame(data)
    except FramingError:
        return None


class FrameReassembler:
    """Extracts frames from an arbitrarily chunked inbound byte stream.

    Bytes that cannot start a valid frame are dropped one at a time, so a
    misaligned start flag inside garbage does not swallow the real frame
    that follows it.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.discarded = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet consumed."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        """Append newly received bytes and return the bodies of all complete frames."""
        self._buffer.extend(data)
        bodies: list[bytes] = []

        while len(self._buffer) >= FRAME_OVERHEAD:
            if self._buffer[0] != START_FLAG:
                self._drop()
                continue

            length = self._buffer[1]
            if len(self._buffer) < length + FRAME_OVERHEAD:
                break  # wait for the rest of the frame

            try:
                body = check_frame(self._buffer)
            except FramingError as e:
                logger.debug("Resynchronizing: %s", e)
                self._drop()
                continue

            del self._buffer[: length + FRAME_OVERHEAD]
            bodies.append(body)

        return bodies

    def clear(self) -> None:
        """Discard any buffered partial data."""
        self._buffer.clear()

    def _drop(self) -> None:
        logger.debug("Discarding byte 0x%02X", self._buffer[0])
        del self._buffer[0]
        self.discarded += 1
