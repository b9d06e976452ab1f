"""
SiFli Flasher - serial firmware flashing for SiFli SF32 chips

Loads a RAM stub through the debug probe, then streams BIN/HEX/ELF images
into flash over the stub's line protocol.
"""

__version__ = "0.1.0"

from sifli_flasher.image import FlashChunk, normalize
from sifli_flasher.protocol import BurnProtocol, SerialTransport
from sifli_flasher.core import FlashSession, SessionConfig, WriteFlashParams, flash_firmware

__all__ = [
    "FlashChunk",
    "normalize",
    "BurnProtocol",
    "SerialTransport",
    "FlashSession",
    "SessionConfig",
    "WriteFlashParams",
    "flash_firmware",
    "__version__",
]
