"""
CRC32 used by the RAM stub for chunk verification.

The stub computes a reflected CRC-32 (poly 0x04C11DB7) with an initial
register of 0 and no final XOR. That is the standard zlib CRC-32 with the
pre- and post-inversion removed, so zlib does the table work and we only
undo the inversions.

Check value for b"123456789" is 0x2DFD2D88.
"""

import zlib

_MASK = 0xFFFFFFFF
CHECK_VALUE = 0x2DFD2D88


class Crc32:
    """Streaming digest. Feeding data in any block size gives the same result."""

    def __init__(self) -> None:
        self._value = 0

    def update(self, data: bytes) -> "Crc32":
        # zlib inverts the register on entry and exit; cancel both.
        self._value = zlib.crc32(data, self._value ^ _MASK) ^ _MASK
        return self

    @property
    def value(self) -> int:
        return self._value & _MASK


def crc32(data: bytes) -> int:
    """One-shot CRC of ``data``."""
    return Crc32().update(data).value
