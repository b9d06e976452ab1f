"""
Flashing session state.

A FlashSession owns the serial transport to the running RAM stub, the Burn
Protocol codec on top of it, the negotiated baud rate, the compatibility
flag and the step counter used to label progress output.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sifli_flasher.protocol import (
    BurnProtocol,
    Command,
    Response,
    SetBaud,
    SoftReset,
    Transport,
    DEFAULT_BAUD_RATE,
)

logger = logging.getLogger(__name__)

SET_BAUD_DELAY_MS = 500


class ResetMode(Enum):
    """What to do before connecting / after finishing."""
    NO_RESET = "no_reset"
    SOFT_RESET = "soft_reset"


@dataclass
class SessionConfig:
    """
    Settings for one flashing invocation.

    Attributes:
        port: Serial port; also matched against debug probe serial numbers
        chip: Chip family (e.g. "SF32LB52")
        memory: Memory variant ("nor", "nand", "sd")
        baud: Baud rate for flashing; renegotiated when not the stub default
        compat: Compatibility mode (small packets, extra delays)
        before: Reset the core before loading the stub or only halt it
        after: Soft reset the target when done
        connect_attempts: Stub bootstrap attempts, <= 0 for unlimited
        stub_dir: Override for the RAM stub search directory
    """
    port: str
    chip: str
    memory: str = "nor"
    baud: int = DEFAULT_BAUD_RATE
    compat: bool = False
    before: ResetMode = ResetMode.NO_RESET
    after: ResetMode = ResetMode.SOFT_RESET
    connect_attempts: int = 3
    stub_dir: Optional[str] = None


class FlashSession:
    """
    Live connection to the RAM stub.

    The transport is owned exclusively by the session for its lifetime.
    """

    def __init__(
        self,
        transport: Transport,
        compat: bool = False,
        baud: int = DEFAULT_BAUD_RATE,
        protocol: Optional[BurnProtocol] = None,
    ):
        self.transport = transport
        self.compat = compat
        self.baud = baud
        self.protocol = protocol or BurnProtocol(transport, compat=compat)
        self.step = 0

    def next_step(self) -> int:
        """Return the current progress step label value and advance it."""
        step = self.step
        self.step += 1
        return step

    def step_label(self) -> str:
        return f"0x{self.step:02X}"

    def command(self, cmd: Command) -> Optional[Response]:
        return self.protocol.send_command(cmd)

    def send_payload(self, data: bytes) -> Response:
        return self.protocol.send_payload(data)

    def set_speed(self, baud: int, delay: int = SET_BAUD_DELAY_MS) -> None:
        """
        Renegotiate the serial baud rate.

        The stub is told first, then the local port follows. The stub switches
        as soon as it has parsed the command, so there is no answer to wait for.
        """
        self.command(SetBaud(baud=baud, delay=delay))
        self.transport.set_baudrate(baud)
        logger.info(f"Baud rate changed {self.baud} -> {baud}")
        self.baud = baud

    def soft_reset(self) -> Optional[Response]:
        """Reboot the target into its normal firmware."""
        response = self.command(SoftReset())
        logger.info("Soft reset issued")
        return response
