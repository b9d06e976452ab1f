"""
Flash write orchestration.

Drives normalized chunks through the Burn Protocol:

    erase_all requested:
        one burn_erase_all per flash bank touched by any chunk, then for each
        chunk: burn_write + payload per buffer, each buffer answered OK

    otherwise, per chunk:
        burn_verify          OK -> flash already matches, skip the chunk
        burn_erase_write     must answer RX_WAIT
        payload buffers      RX_WAIT -> keep sending, OK -> chunk committed

    verify requested:
        burn_verify after every chunk that was written, must answer OK

Any other answer aborts the whole run; nothing is retried here.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from sifli_flasher.image import FlashChunk
from sifli_flasher.protocol import (
    EraseAll,
    Response,
    Verify,
    Write,
    WriteAndErase,
)

from .session import FlashSession

logger = logging.getLogger(__name__)

STREAM_BUFFER_SIZE = 128 * 1024
COMPAT_PACKET_SIZE = 256
BANK_MASK = 0xFF00_0000

# progress_cb(event, chunk, done_bytes, total_bytes)
ProgressCallback = Callable[[str, FlashChunk, int, int], None]


class FlashError(Exception):
    """Base exception for flash write orchestration errors."""


class WriteError(FlashError):
    """The stub rejected or did not complete a transfer."""

    def __init__(self, operation: str, address: int, response: Optional[Response]):
        self.operation = operation
        self.address = address
        self.response = response
        got = response.value if response is not None else "no response"
        super().__init__(f"{operation} failed at 0x{address:08X}: got {got}")


class VerifyError(FlashError):
    """Transfer completed but flash content does not match the chunk CRC."""

    def __init__(self, address: int, length: int, crc: int, response: Optional[Response]):
        self.address = address
        self.length = length
        self.crc = crc
        self.response = response
        got = response.value if response is not None else "no response"
        super().__init__(
            f"Verify failed at 0x{address:08X} (len 0x{length:08X}, "
            f"crc 0x{crc:08X}): got {got}"
        )


@dataclass
class WriteFlashParams:
    """
    Options of the write_flash operation.

    Attributes:
        files: ``file[@address]`` arguments
        verify: Verify every written chunk afterwards
        no_compress: Reserved; accepted for CLI compatibility, no wire effect
        erase_all: Bulk erase every touched bank before writing
    """
    files: List[str] = field(default_factory=list)
    verify: bool = True
    no_compress: bool = False
    erase_all: bool = False


@dataclass
class WriteFlashReport:
    """What write_flash did, by chunk address."""
    erased_banks: List[int] = field(default_factory=list)
    written: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    verified: List[int] = field(default_factory=list)
    bytes_written: int = 0


def bank_of(address: int) -> int:
    """Flash bank (top address byte) of ``address``."""
    return address & BANK_MASK


def _notify(progress_cb: Optional[ProgressCallback], event: str, chunk: FlashChunk, done: int) -> None:
    if progress_cb is not None:
        progress_cb(event, chunk, done, len(chunk))


def erase_banks(session: FlashSession, chunks: Sequence[FlashChunk]) -> List[int]:
    """
    Issue one EraseAll per distinct bank touched by ``chunks``.

    Returns:
        Bank base addresses in the order they were erased

    Raises:
        WriteError: The stub did not answer OK
    """
    step = session.next_step()
    logger.info(f"[0x{step:02X}] Erasing all flash regions...")
    erased: List[int] = []
    for chunk in chunks:
        bank = bank_of(chunk.address)
        if bank in erased:
            continue
        response = session.command(EraseAll(address=chunk.address))
        if response is not Response.OK:
            raise WriteError("erase_all", chunk.address, response)
        erased.append(bank)
    logger.info(f"[0x{step:02X}] All flash regions erased")
    return erased


def verify_chunk(session: FlashSession, chunk: FlashChunk) -> None:
    """
    Ask the stub to verify ``chunk`` against its CRC.

    Raises:
        VerifyError: The stub did not answer OK
    """
    step = session.next_step()
    logger.info(f"[0x{step:02X}] Verifying 0x{chunk.address:08X}...")
    response = session.command(Verify(address=chunk.address, length=len(chunk), crc=chunk.crc32))
    if response is not Response.OK:
        raise VerifyError(chunk.address, len(chunk), chunk.crc32, response)
    logger.info(f"[0x{step:02X}] Verify success!")


def needs_download(session: FlashSession, chunk: FlashChunk) -> bool:
    """True unless flash already holds exactly this chunk."""
    step = session.next_step()
    logger.info(
        f"[0x{step:02X}] Checking whether a re-download is necessary "
        f"at address 0x{chunk.address:08X}..."
    )
    response = session.command(Verify(address=chunk.address, length=len(chunk), crc=chunk.crc32))
    if response is Response.OK:
        logger.info(f"[0x{step:02X}] No need to re-download, skip!")
        return False
    logger.info(f"[0x{step:02X}] Need to re-download")
    return True


def _buffer_size(session: FlashSession) -> int:
    return COMPAT_PACKET_SIZE if session.compat else STREAM_BUFFER_SIZE


def stream_erase_write(
    session: FlashSession,
    chunk: FlashChunk,
    progress_cb: Optional[ProgressCallback] = None,
) -> None:
    """
    Erase the chunk's range and stream it, following RX_WAIT flow control.

    Raises:
        WriteError: Unexpected answer to the command or to a buffer
    """
    response = session.command(WriteAndErase(address=chunk.address, length=len(chunk)))
    if response is not Response.RX_WAIT:
        raise WriteError("erase_write", chunk.address, response)

    done = 0
    for block in chunk.iter_blocks(_buffer_size(session)):
        response = session.send_payload(bytes(block))
        done += len(block)
        if response is Response.RX_WAIT:
            _notify(progress_cb, "progress", chunk, done)
            continue
        if response is Response.OK:
            _notify(progress_cb, "progress", chunk, done)
            break
        raise WriteError("write", chunk.address + done - len(block), response)
    else:
        logger.warning(
            f"Stub answered RX_WAIT to the last buffer at 0x{chunk.address:08X}; "
            f"all {len(chunk)} bytes were sent"
        )


def stream_write(
    session: FlashSession,
    chunk: FlashChunk,
    progress_cb: Optional[ProgressCallback] = None,
) -> None:
    """
    Stream a chunk into pre-erased flash, one burn_write per buffer.

    Raises:
        WriteError: A buffer was not answered OK
    """
    done = 0
    for block in chunk.iter_blocks(_buffer_size(session)):
        address = chunk.address + done
        session.command(Write(address=address, length=len(block)))
        response = session.send_payload(bytes(block))
        if response is not Response.OK:
            raise WriteError("write", address, response)
        done += len(block)
        _notify(progress_cb, "progress", chunk, done)


def write_flash(
    session: FlashSession,
    params: WriteFlashParams,
    chunks: Sequence[FlashChunk],
    progress_cb: Optional[ProgressCallback] = None,
) -> WriteFlashReport:
    """
    Commit ``chunks`` to flash.

    Args:
        session: Session connected to the running stub
        params: write_flash options
        chunks: Normalized chunks, ascending by address
        progress_cb: Optional callback(event, chunk, done_bytes, total_bytes);
            events are "start", "progress", "skip" and "done"

    Returns:
        WriteFlashReport

    Raises:
        WriteError: Transfer rejected or incomplete
        VerifyError: Post-write verification failed
        ProtocolTimeoutError: Stub stopped answering
    """
    report = WriteFlashReport()

    if params.no_compress:
        logger.debug("no_compress requested; transfers are never compressed")

    if params.erase_all:
        report.erased_banks = erase_banks(session, chunks)

    for chunk in chunks:
        if not params.erase_all and not needs_download(session, chunk):
            report.skipped.append(chunk.address)
            _notify(progress_cb, "skip", chunk, len(chunk))
            continue

        step = session.next_step()
        logger.info(f"[0x{step:02X}] Download at 0x{chunk.address:08X} ({len(chunk)} bytes)")
        _notify(progress_cb, "start", chunk, 0)

        if params.erase_all:
            stream_write(session, chunk, progress_cb)
        else:
            stream_erase_write(session, chunk, progress_cb)

        report.written.append(chunk.address)
        report.bytes_written += len(chunk)
        _notify(progress_cb, "done", chunk, len(chunk))
        logger.info(f"[0x{step:02X}] Download success!")

        if params.verify:
            verify_chunk(session, chunk)
            report.verified.append(chunk.address)

    return report
