"""Dallas/Maxim CRC-8 (polynomial X^8 + X^5 + X^4 + 1).

The checksum is computed bit-serially over the message padded with one
extra byte. Each set bit of the current byte is cleared by XOR-ing a low
correction into that byte and a high correction into the next one, so the
padding byte ends up holding the remainder.

To compute a checksum::

    checksum = crc8(message)

To validate a received message::

    crc8(message, checksum) == 0
"""

from __future__ import annotations

# Bit position -> (correction for the current byte, correction for the next byte)
_REDUCTION: tuple[tuple[int, int], ...] = (
    (25, 1),
    (50, 2),
    (100, 4),
    (200, 8),
    (144, 17),
    (32, 35),
    (64, 70),
    (128, 140),
)


def crc8(message: bytes, crc: int = 0) -> int:
    """Reduce ``message`` followed by ``crc`` and return the final byte.

    Args:
        message: The bytes to checksum.
        crc: Padding byte; 0 to compute a checksum, the received checksum
            to validate (a valid message reduces to 0).
    """
    if not 0 <= crc <= 0xFF:
        raise ValueError(f"CRC byte must be 0-255, got {crc}")

    buf = bytearray(message)
    buf.append(crc)
    for i in range(len(message)):
        for bit, (low, high) in enumerate(_REDUCTION):
            if buf[i] & (1 << bit):
                buf[i] ^= low
                buf[i + 1] ^= high
    return buf[-1]
