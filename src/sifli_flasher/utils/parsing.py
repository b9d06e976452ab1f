"""
Centralized parsing helpers for addresses and file arguments.

Both the CLI and the image normalizer import these helpers rather than
re-implementing them.
"""

from typing import Optional, Tuple

U32_MAX = 0xFFFFFFFF

_PREFIX_RADIX = (
    ("0x", 16),
    ("0b", 2),
    ("0o", 8),
)

_RADIX_DIGITS = {
    2: frozenset("01"),
    8: frozenset("01234567"),
    10: frozenset("0123456789"),
    16: frozenset("0123456789abcdef"),
}


def parse_address(value: Optional[str]) -> Optional[int]:
    """
    Parse a 32-bit address literal.

    This is the single source of truth for address parsing.

    Accepts:
        - Decimal: "4096"
        - Hex with 0x prefix: "0x12000000" or "0X12000000"
        - Binary with 0b prefix: "0b1000"
        - Octal with 0o prefix: "0o777"
        - None or empty for "no address"

    Returns:
        Parsed integer address, or None if value is None or empty.

    Raises:
        ValueError: If value cannot be parsed or does not fit in 32 bits.
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    lowered = value.lower()
    try:
        for prefix, radix in _PREFIX_RADIX:
            if lowered.startswith(prefix):
                digits = lowered[len(prefix):]
                break
        else:
            digits, radix = lowered, 10
        # int() would also take underscores and inner whitespace
        if not digits or not _RADIX_DIGITS[radix].issuperset(digits):
            raise ValueError(lowered)
        result = int(digits, radix)
    except ValueError:
        raise ValueError(
            f"Invalid address '{value}'. Use decimal (4096), hex (0x1000), "
            f"binary (0b1000) or octal (0o10)."
        )

    if result > U32_MAX:
        raise ValueError(f"Address '{value}' does not fit in 32 bits.")
    return result


def split_file_argument(value: str) -> Tuple[str, Optional[str]]:
    """
    Split a ``path[@address]`` argument.

    The split happens on the last '@' so directory names containing '@'
    still work when an address is given.

    Returns:
        Tuple of (path, address_text) where address_text is None when absent.
    """
    path, sep, address = value.rpartition("@")
    if not sep:
        return value, None
    return path, address


def parse_baud(value: str) -> int:
    """Parse a positive baud rate."""
    try:
        baud = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid baud rate '{value}'.")
    if baud <= 0:
        raise ValueError(f"Baud rate must be positive, got {baud}.")
    return baud
