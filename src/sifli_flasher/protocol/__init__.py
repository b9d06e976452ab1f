"""Serial transport and Burn Protocol codec for the SiFli RAM stub."""

from .serial_transport import (
    SerialTransport,
    Transport,
    TransportError,
    open_serial,
    DEFAULT_BAUD_RATE,
)
from .burn_protocol import (
    BurnProtocol,
    Command,
    EraseAll,
    Verify,
    WriteAndErase,
    Write,
    SoftReset,
    SetBaud,
    Response,
    TokenMatcher,
    ProtocolError,
    ProtocolTimeoutError,
    COMMAND_TIMEOUT,
    ERASE_ALL_TIMEOUT,
)

__all__ = [
    # Transport
    "SerialTransport",
    "Transport",
    "TransportError",
    "open_serial",
    "DEFAULT_BAUD_RATE",
    # Burn protocol
    "BurnProtocol",
    "Command",
    "EraseAll",
    "Verify",
    "WriteAndErase",
    "Write",
    "SoftReset",
    "SetBaud",
    "Response",
    "TokenMatcher",
    "ProtocolError",
    "ProtocolTimeoutError",
    "COMMAND_TIMEOUT",
    "ERASE_ALL_TIMEOUT",
]
