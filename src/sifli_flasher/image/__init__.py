"""Firmware image handling - normalization of BIN/HEX/ELF inputs into flash chunks."""

from .crc import Crc32, crc32
from .normalizer import (
    FlashChunk,
    FileSpec,
    FileType,
    ImageError,
    ImageReadError,
    HexRecordError,
    UnrecognizedImageError,
    MissingAddressError,
    InvalidAddressError,
    ImageOverlapError,
    parse_file_spec,
    detect_file_type,
    binary_to_chunks,
    hex_to_chunks,
    elf_to_chunks,
    normalize,
    RAM_WINDOW_BASE,
    SECTOR_SIZE,
)

__all__ = [
    # CRC
    "Crc32",
    "crc32",
    # Chunks
    "FlashChunk",
    "FileSpec",
    "FileType",
    "parse_file_spec",
    "detect_file_type",
    "binary_to_chunks",
    "hex_to_chunks",
    "elf_to_chunks",
    "normalize",
    "RAM_WINDOW_BASE",
    "SECTOR_SIZE",
    # Errors
    "ImageError",
    "ImageReadError",
    "HexRecordError",
    "UnrecognizedImageError",
    "MissingAddressError",
    "InvalidAddressError",
    "ImageOverlapError",
]
