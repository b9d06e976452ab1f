"""
Burn Protocol Implementation

ASCII command/response protocol spoken by the SiFli RAM stub over the
serial line after bootstrap.

Commands are single lines terminated by '\\r':

    burn_erase_all 0x{address:08x}
    burn_verify 0x{address:08x} 0x{len:08x} 0x{crc:08x}
    burn_erase_write 0x{address:08x} 0x{len:08x}
    burn_write 0x{address:08x} 0x{len:08x}
    burn_reset
    burn_speed {baud} {delay}

Responses are not framed. The stub may print diagnostics around its answer,
so the reader scans the raw byte stream for one of the tokens "OK", "Fail"
or "RX_WAIT". The first token found ends the exchange; on a tie at the same
byte the table order OK, Fail, RX_WAIT decides.

The protocol is half-duplex: every command that expects an answer is fully
classified before the next one is sent.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional

from .serial_transport import Transport

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 4.0
ERASE_ALL_TIMEOUT = 30.0
COMPAT_PIECE_SIZE = 256
COMPAT_PIECE_DELAY = 0.01
# Upper bound for a single blocking read so a dead link does not overshoot
# the command deadline by the full port timeout.
READ_SLICE = 0.1


class ProtocolError(Exception):
    """Base exception for Burn Protocol errors."""


class ProtocolTimeoutError(ProtocolError):
    """No response token arrived before the deadline."""

    def __init__(self, operation: str, timeout: float, received: int = 0):
        self.operation = operation
        self.timeout = timeout
        self.received = received
        super().__init__(
            f"Timeout after {timeout:.1f}s waiting for response to {operation} "
            f"({received} unrecognized bytes received)"
        )


class Response(Enum):
    """Terminal responses of the RAM stub. Values are the wire tokens."""
    OK = "OK"
    FAIL = "Fail"
    RX_WAIT = "RX_WAIT"

    @property
    def token(self) -> bytes:
        return self.value.encode("ascii")


# Order matters: earlier entries win when several tokens end on the same byte.
RESPONSE_TABLE = (Response.OK, Response.FAIL, Response.RX_WAIT)


@dataclass(frozen=True)
class Command:
    """Base class for stub commands."""

    # Whether the stub answers this command with a token.
    awaits_response: ClassVar[bool] = True

    def render(self) -> str:
        raise NotImplementedError

    def encode(self) -> bytes:
        return self.render().encode("ascii")


@dataclass(frozen=True)
class EraseAll(Command):
    """Erase the whole flash bank containing ``address``."""
    address: int

    def render(self) -> str:
        return f"burn_erase_all 0x{self.address:08x}\r"


@dataclass(frozen=True)
class Verify(Command):
    """Ask the stub to CRC a flash range and compare it to ``crc``."""
    address: int
    length: int
    crc: int

    def render(self) -> str:
        return f"burn_verify 0x{self.address:08x} 0x{self.length:08x} 0x{self.crc:08x}\r"


@dataclass(frozen=True)
class WriteAndErase(Command):
    """Erase the range then receive ``length`` bytes for it."""
    address: int
    length: int

    def render(self) -> str:
        return f"burn_erase_write 0x{self.address:08x} 0x{self.length:08x}\r"


@dataclass(frozen=True)
class Write(Command):
    """Receive ``length`` bytes into already erased flash."""
    address: int
    length: int

    # The stub starts receiving straight away; the payload's answer covers it.
    awaits_response: ClassVar[bool] = False

    def render(self) -> str:
        return f"burn_write 0x{self.address:08x} 0x{self.length:08x}\r"


@dataclass(frozen=True)
class SoftReset(Command):
    """Reboot the target into its normal firmware."""

    def render(self) -> str:
        return "burn_reset\r"


@dataclass(frozen=True)
class SetBaud(Command):
    """Switch the stub UART to ``baud`` after ``delay`` ms."""
    baud: int
    delay: int = 500

    # The stub changes rate immediately and cannot answer at the old one.
    awaits_response: ClassVar[bool] = False

    def render(self) -> str:
        return f"burn_speed {self.baud} {self.delay}\r"


class TokenMatcher:
    """
    Incremental matcher for response tokens in a noisy byte stream.

    Keeps only the last ``len(longest token)`` bytes. A token that was not in
    the stream before the newest byte can only end at that byte, so checking
    suffixes after each byte finds the same token a full rescan would.
    """

    def __init__(self, table=RESPONSE_TABLE):
        self._table = tuple(table)
        self._window_size = max(len(r.token) for r in self._table)
        self._window = bytearray()
        self.received = 0

    def reset(self) -> None:
        self._window.clear()
        self.received = 0

    def feed(self, data: bytes) -> Optional[Response]:
        """Feed bytes one at a time; return the first response completed."""
        for byte in data:
            self.received += 1
            self._window.append(byte)
            if len(self._window) > self._window_size:
                del self._window[0]
            for response in self._table:
                if self._window.endswith(response.token):
                    return response
        return None


class BurnProtocol:
    """
    Command/response codec for the RAM stub.

    Example:
        protocol = BurnProtocol(transport)
        if protocol.send_command(Verify(0x12000000, len(data), crc)) is Response.OK:
            ...
    """

    def __init__(
        self,
        transport: Transport,
        compat: bool = False,
        timeout: float = COMMAND_TIMEOUT,
        erase_timeout: float = ERASE_ALL_TIMEOUT,
    ):
        """
        Args:
            transport: Open serial transport
            compat: Compatibility mode, payloads go out in 256-byte pieces
            timeout: Deadline for ordinary commands and payloads (seconds)
            erase_timeout: Deadline for EraseAll (seconds)
        """
        self.transport = transport
        self.compat = compat
        self.timeout = timeout
        self.erase_timeout = erase_timeout

    def _timeout_for(self, cmd: Command) -> float:
        if isinstance(cmd, EraseAll):
            return self.erase_timeout
        return self.timeout

    def send_command(self, cmd: Command) -> Optional[Response]:
        """
        Send a command and classify the stub's answer.

        Stale input from an earlier, timed-out exchange is discarded first.

        Returns:
            The decoded Response, or None for commands that get no answer
            (SetBaud, Write)

        Raises:
            ProtocolTimeoutError: No token before the command's deadline
            TransportError: Serial failure
        """
        wire = cmd.encode()
        self.transport.clear_input()
        self.transport.write(wire)
        self.transport.flush()
        logger.debug(f">>> {wire.decode('ascii').strip()}")

        if not cmd.awaits_response:
            return None

        return self._await_response(
            operation=type(cmd).__name__,
            timeout=self._timeout_for(cmd),
        )

    def send_payload(self, data: bytes) -> Response:
        """
        Stream raw payload bytes and classify the stub's answer.

        In compatibility mode the payload is cut into 256-byte pieces with a
        short pause between them for receivers with small buffers.

        Raises:
            ProtocolTimeoutError: No token before the deadline
            TransportError: Serial failure
        """
        if not self.compat:
            self.transport.write(data)
            self.transport.flush()
        else:
            view = memoryview(data)
            for offset in range(0, len(view), COMPAT_PIECE_SIZE):
                self.transport.write(bytes(view[offset:offset + COMPAT_PIECE_SIZE]))
                self.transport.flush()
                time.sleep(COMPAT_PIECE_DELAY)
        logger.debug(f">>> <payload {len(data)} bytes>")

        return self._await_response(
            operation=f"payload of {len(data)} bytes",
            timeout=self.timeout,
        )

    def _await_response(self, operation: str, timeout: float) -> Response:
        matcher = TokenMatcher()
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProtocolTimeoutError(operation, timeout, matcher.received)
            byte = self.transport.read_byte(min(remaining, READ_SLICE))
            if not byte:
                continue
            response = matcher.feed(byte)
            if response is not None:
                logger.debug(f"<<< {response.value} ({matcher.received} bytes)")
                return response
