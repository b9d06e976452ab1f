"""
RAM stub bootstrap.

Loads the flashing stub into target RAM through the debug probe and starts
it. Once running, the stub serves the Burn Protocol on the serial line.

Sequence:
1. Halt the core (optionally through a reset)
2. Copy the stub image to its load address in fixed-size packets
3. Set SP and PC from the first 8 bytes of the image (Cortex-M vector table)
4. Resume and give the stub time to bring up its UART
5. Send the console-release magic on the serial line and drop any echo
"""

import logging
import os
import struct
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sifli_flasher.models import ChipProfile
from sifli_flasher.protocol.serial_transport import Transport

from .debug_probe import BootstrapError, DebugProbe

logger = logging.getLogger(__name__)

STUB_DIR_ENV = "SFTOOL_STUB_DIR"
PACKAGE_STUB_DIR = Path(__file__).resolve().parent.parent / "stubs"

PACKET_SIZE = 64 * 1024
COMPAT_PACKET_SIZE = 256
SETTLE_DELAY = 0.5

# Makes the on-chip UART debug console let go of the port.
CONSOLE_RELEASE_MAGIC = bytes([
    0x7E, 0x79, 0x08, 0x00, 0x10, 0x00, 0x41, 0x54,
    0x53, 0x46, 0x33, 0x32, 0x18, 0x21,
])


class StubNotFoundError(BootstrapError):
    """The stub image file for a supported chip is missing or invalid."""


@dataclass(frozen=True)
class StubImage:
    """RAM stub contents plus the entry state decoded from its header."""
    name: str
    data: bytes

    @property
    def initial_sp(self) -> int:
        return struct.unpack_from("<I", self.data, 0)[0]

    @property
    def entry_pc(self) -> int:
        return struct.unpack_from("<I", self.data, 4)[0]


def stub_search_dir(stub_dir: Optional[str] = None) -> Path:
    """Directory holding stub images: argument, then $SFTOOL_STUB_DIR, then the package."""
    if stub_dir:
        return Path(stub_dir)
    env_dir = os.getenv(STUB_DIR_ENV, "").strip()
    if env_dir:
        return Path(env_dir)
    return PACKAGE_STUB_DIR


def load_stub_image(profile: ChipProfile, stub_dir: Optional[str] = None) -> StubImage:
    """
    Read the stub image for ``profile``.

    Raises:
        StubNotFoundError: File missing, unreadable or too short for a header
    """
    path = stub_search_dir(stub_dir) / profile.stub_file
    try:
        data = path.read_bytes()
    except OSError as e:
        raise StubNotFoundError(
            f"No stub image for {profile.chip}/{profile.memory.value} at {path}: {e}"
        )
    if len(data) < 8:
        raise StubNotFoundError(f"Stub image {path} is too short ({len(data)} bytes)")
    return StubImage(name=profile.stub_file, data=data)


def download_stub(
    probe: DebugProbe,
    stub: StubImage,
    load_address: int,
    packet_size: int = PACKET_SIZE,
) -> int:
    """
    Copy the stub to target RAM.

    Returns:
        Number of packets written
    """
    view = memoryview(stub.data)
    address = load_address
    packets = 0
    for offset in range(0, len(view), packet_size):
        packet = bytes(view[offset:offset + packet_size])
        probe.write_memory(address, packet)
        address += len(packet)
        packets += 1
    logger.debug(
        f"Loaded {stub.name} ({len(stub.data)} bytes, {packets} packets) "
        f"at 0x{load_address:08X}"
    )
    return packets


def bootstrap(
    profile: ChipProfile,
    probe: DebugProbe,
    compat: bool = False,
    reset: bool = False,
    stub_dir: Optional[str] = None,
    settle: float = SETTLE_DELAY,
) -> StubImage:
    """
    Load and start the RAM stub.

    Args:
        profile: Target chip profile
        probe: Attached debug probe
        compat: Compatibility mode, stub goes out in 256-byte packets
        reset: Reset the core before halting it
        stub_dir: Override for the stub search directory
        settle: Seconds to wait after resuming

    Returns:
        The StubImage that was started

    Raises:
        StubNotFoundError: No stub image available
        ProbeError: Any probe operation failed
    """
    stub = load_stub_image(profile, stub_dir)

    if reset:
        probe.reset_and_halt()
    else:
        probe.halt()

    packet_size = COMPAT_PACKET_SIZE if compat else PACKET_SIZE
    download_stub(probe, stub, profile.stub_load_address, packet_size)

    logger.info(f"SP: 0x{stub.initial_sp:08X}, PC: 0x{stub.entry_pc:08X}")
    probe.write_core_register("sp", stub.initial_sp)
    probe.write_core_register("pc", stub.entry_pc)
    probe.resume()

    if settle > 0:
        time.sleep(settle)
    return stub


def release_debug_console(transport: Transport) -> None:
    """Ask the UART debug console to release the port and drop its output."""
    transport.write(CONSOLE_RELEASE_MAGIC)
    transport.write(b"\r\n")
    transport.flush()
    transport.clear_input()
