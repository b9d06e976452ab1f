"""
Firmware image normalization.

Turns the ``file[@address]`` arguments given to ``write_flash`` into an
ordered list of addressed, checksummed flash chunks.

Supported inputs:
- Raw binary, only via ``path@address`` (a .bin carries no load address)
- Intel HEX (.hex)
- ELF / AXF (.elf, .axf, or any file starting with the ELF magic)

Nothing here talks to the target. Either every input converts cleanly
or an ImageError is raised and no chunk list is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile
from intelhex import HexReaderError, IntelHex

from sifli_flasher.image.crc import crc32
from sifli_flasher.utils.parsing import parse_address, split_file_argument

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7fELF"
FILL_BYTE = 0xFF
SECTOR_SIZE = 0x1000
# Segments at or above this physical address live in RAM and are not flashed.
RAM_WINDOW_BASE = 0x2000_0000
HEX_BANK_SIZE = 0x10000
ADDRESS_SPACE_END = 0x1_0000_0000


class ImageError(Exception):
    """Base exception for image normalization errors."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class ImageReadError(ImageError):
    """File could not be opened, read or memory-mapped."""


class HexRecordError(ImageError):
    """Intel HEX file contains a malformed record."""


class UnrecognizedImageError(ImageError):
    """File type could not be determined from extension or magic."""


class MissingAddressError(ImageError):
    """Raw binary given without the @address suffix."""


class InvalidAddressError(ImageError):
    """The @address suffix is not a valid 32-bit literal."""


class ImageOverlapError(ImageError):
    """Two chunks target overlapping flash ranges."""


class FileType(Enum):
    """Input image formats."""
    BIN = "bin"
    HEX = "hex"
    ELF = "elf"


_EXTENSIONS = {
    ".bin": FileType.BIN,
    ".hex": FileType.HEX,
    ".elf": FileType.ELF,
    ".axf": FileType.ELF,
}


@dataclass(frozen=True)
class FlashChunk:
    """
    Contiguous, addressed unit of flash-destined data.

    Attributes:
        address: Flash address of the first byte
        data: Chunk contents, holes already filled with 0xFF
        crc32: CRC of ``data`` as computed by the RAM stub
    """
    address: int
    data: bytes
    crc32: int

    @classmethod
    def from_bytes(cls, address: int, data: bytes) -> "FlashChunk":
        data = bytes(data)
        return cls(address=address, data=data, crc32=crc32(data))

    def __len__(self) -> int:
        return len(self.data)

    @property
    def end_address(self) -> int:
        """Address one past the last byte."""
        return self.address + len(self.data)

    def iter_blocks(self, size: int) -> Iterator[memoryview]:
        """Yield the chunk contents in blocks of at most ``size`` bytes."""
        if size <= 0:
            raise ValueError(f"Block size must be positive, got {size}")
        view = memoryview(self.data)
        for offset in range(0, len(view), size):
            yield view[offset:offset + size]

    def __repr__(self) -> str:
        return (
            f"FlashChunk(address=0x{self.address:08X}, len={len(self.data)}, "
            f"crc32=0x{self.crc32:08X})"
        )


@dataclass(frozen=True)
class FileSpec:
    """One parsed ``path[@address]`` argument."""
    path: str
    address: Optional[int] = None


def parse_file_spec(text: str) -> FileSpec:
    """Parse ``path`` or ``path@address`` into a FileSpec."""
    path, address_text = split_file_argument(text)
    if address_text is None:
        return FileSpec(path=path)
    try:
        address = parse_address(address_text)
    except ValueError as e:
        raise InvalidAddressError(str(e), path=path)
    if address is None:
        raise InvalidAddressError("empty address after '@'", path=path)
    return FileSpec(path=path, address=address)


def detect_file_type(path: str) -> FileType:
    """
    Determine image type from the extension, falling back to magic sniffing.

    Raises:
        UnrecognizedImageError: Neither the extension nor the magic is known
        ImageReadError: File cannot be read for sniffing
    """
    file_type = _EXTENSIONS.get(Path(path).suffix.lower())
    if file_type is not None:
        return file_type

    try:
        with open(path, "rb") as f:
            magic = f.read(len(ELF_MAGIC))
    except OSError as e:
        raise ImageReadError(f"cannot read file: {e}", path=path)

    if magic == ELF_MAGIC:
        return FileType.ELF
    raise UnrecognizedImageError("unrecognized file type", path=path)


def binary_to_chunks(path: str, address: int) -> List[FlashChunk]:
    """Whole raw file as a single chunk at ``address``."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ImageReadError(f"cannot read file: {e}", path=path)
    if not data:
        logger.warning(f"{path} is empty, nothing to flash")
        return []
    return [FlashChunk.from_bytes(address, data)]


def hex_to_chunks(path: str) -> List[FlashChunk]:
    """
    Convert an Intel HEX file to chunks.

    Every 64 KiB extended-linear-address bank that holds data becomes one
    chunk starting at the bank base. Bytes between the base and the last
    written byte that no record covers are 0xFF. Banks whose chunks touch
    end-to-start are merged.
    """
    ih = IntelHex()
    ih.padding = FILL_BYTE
    try:
        ih.loadhex(path)
    except HexReaderError as e:
        raise HexRecordError(f"malformed HEX record: {e}", path=path)
    except UnicodeDecodeError as e:
        raise HexRecordError(f"not a text HEX file: {e}", path=path)
    except OSError as e:
        raise ImageReadError(f"cannot read file: {e}", path=path)

    # bank index -> end address (exclusive) of the data inside that bank
    bank_ends: Dict[int, int] = {}
    for start, stop in ih.segments():
        for bank in range(start // HEX_BANK_SIZE, (stop - 1) // HEX_BANK_SIZE + 1):
            end = min(stop, (bank + 1) * HEX_BANK_SIZE)
            bank_ends[bank] = max(bank_ends.get(bank, 0), end)

    chunks: List[FlashChunk] = []
    pending_address = None
    pending = bytearray()
    for bank in sorted(bank_ends):
        base = bank * HEX_BANK_SIZE
        data = ih.tobinstr(start=base, size=bank_ends[bank] - base)
        if pending_address is not None and pending_address + len(pending) == base:
            pending.extend(data)
            continue
        if pending_address is not None:
            chunks.append(FlashChunk.from_bytes(pending_address, pending))
        pending_address = base
        pending = bytearray(data)

    if pending_address is not None:
        chunks.append(FlashChunk.from_bytes(pending_address, pending))

    if not chunks:
        logger.warning(f"{path} contains no data records")
    return chunks


def elf_to_chunks(
    path: str,
    ram_base: int = RAM_WINDOW_BASE,
    sector_size: int = SECTOR_SIZE,
) -> List[FlashChunk]:
    """
    Convert the flash-destined PT_LOAD segments of an ELF file to chunks.

    Segments are taken by physical (load) address and coalesced: a new chunk
    starts whenever the sector-aligned base of the next segment lies past the
    end of the current chunk. Gaps inside a chunk are filled with 0xFF.
    """
    try:
        with open(path, "rb") as f:
            segments = _flash_segments(ELFFile(f), ram_base, path)
    except ELFError as e:
        raise UnrecognizedImageError(f"invalid ELF file: {e}", path=path)
    except OSError as e:
        raise ImageReadError(f"cannot read file: {e}", path=path)

    chunks: List[FlashChunk] = []
    if not segments:
        logger.warning(f"{path} has no loadable segments below 0x{ram_base:08X}")
        return chunks

    mask = ~(sector_size - 1)
    current_base = segments[0][0] & mask
    current = bytearray()

    for paddr, data in segments:
        segment_base = paddr & mask
        if segment_base > current_base + len(current):
            chunks.append(FlashChunk.from_bytes(current_base, current))
            current_base = segment_base
            current = bytearray()

        relative = paddr - current_base
        if relative < len(current):
            raise ImageOverlapError(
                f"segment at 0x{paddr:08X} overlaps previous segment "
                f"ending at 0x{current_base + len(current):08X}",
                path=path,
            )
        current.extend(bytes([FILL_BYTE]) * (relative - len(current)))
        current.extend(data)

    if current:
        chunks.append(FlashChunk.from_bytes(current_base, current))
    return chunks


def _flash_segments(elf: ELFFile, ram_base: int, path: str) -> List[tuple]:
    """
    Sorted (paddr, data) pairs for loadable segments below ``ram_base``.

    Raises:
        ImageReadError: A segment's file data runs past the end of the file
    """
    segments = []
    for segment in elf.iter_segments():
        if segment["p_type"] != "PT_LOAD":
            continue
        paddr = segment["p_paddr"]
        filesz = segment["p_filesz"]
        if paddr >= ram_base or filesz == 0:
            continue
        data = segment.data()
        if len(data) != filesz:
            raise ImageReadError(
                f"segment at 0x{paddr:08X} truncated ({len(data)} of {filesz} bytes)",
                path=path,
            )
        segments.append((paddr, data))
    segments.sort(key=lambda item: item[0])
    return segments


def load_file(spec: FileSpec, ram_base: int = RAM_WINDOW_BASE) -> List[FlashChunk]:
    """Convert a single FileSpec into chunks."""
    if spec.address is not None:
        return binary_to_chunks(spec.path, spec.address)

    file_type = detect_file_type(spec.path)
    if file_type is FileType.HEX:
        return hex_to_chunks(spec.path)
    if file_type is FileType.ELF:
        return elf_to_chunks(spec.path, ram_base=ram_base)
    raise MissingAddressError(
        "binary files need an explicit address, use <file@address>",
        path=spec.path,
    )


def normalize(
    files: Iterable[str],
    ram_base: int = RAM_WINDOW_BASE,
) -> List[FlashChunk]:
    """
    Normalize ``file[@address]`` arguments into flash chunks.

    Args:
        files: Input arguments, e.g. ["app.elf", "fw.bin@0x12000000"]
        ram_base: Physical address where the RAM window starts; ELF segments
            at or above it are skipped

    Returns:
        Chunks sorted by ascending address, pairwise disjoint

    Raises:
        ImageError: Any input fails to convert (no partial result)
    """
    chunks: List[FlashChunk] = []
    for text in files:
        spec = parse_file_spec(text)
        file_chunks = load_file(spec, ram_base=ram_base)
        for chunk in file_chunks:
            logger.debug(f"{spec.path}: {chunk!r}")
            if chunk.end_address > ADDRESS_SPACE_END:
                raise InvalidAddressError(
                    f"chunk at 0x{chunk.address:08X} ({len(chunk)} bytes) "
                    f"runs past the end of the 32-bit address space",
                    path=spec.path,
                )
        chunks.extend(file_chunks)

    chunks.sort(key=lambda c: c.address)
    for prev, cur in zip(chunks, chunks[1:]):
        if cur.address < prev.end_address:
            raise ImageOverlapError(
                f"chunk at 0x{cur.address:08X} overlaps chunk "
                f"0x{prev.address:08X}-0x{prev.end_address:08X}"
            )
    return chunks
