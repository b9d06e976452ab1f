"""
Core workflow actions for SiFli Flasher.

End-to-end operations the CLI calls. Images are always normalized before
any hardware is touched, so a bad input set never leads to partial flashing.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterable, Optional

from sifli_flasher.image import FlashChunk, ImageError, normalize
from sifli_flasher.models import ChipProfile, UnsupportedChipError, get_chip_profile
from sifli_flasher.probe import (
    BootstrapError,
    DebugProbe,
    ProbeError,
    PyOCDProbe,
    bootstrap,
    release_debug_console,
)
from sifli_flasher.protocol import (
    DEFAULT_BAUD_RATE,
    ProtocolError,
    Transport,
    TransportError,
    open_serial,
)

from .results import OperationResult
from .session import FlashSession, ResetMode, SessionConfig
from .write_flash import FlashError, ProgressCallback, WriteFlashParams, write_flash

logger = logging.getLogger(__name__)

RETRY_DELAY = 0.5

ProbeFactory = Callable[[str, str], DebugProbe]
TransportFactory = Callable[[str, int], Transport]


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "sifli_flasher"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def _region(chunk: FlashChunk) -> str:
    return f"0x{chunk.address:08X}-0x{chunk.end_address:08X}"


def inspect_images(files: Iterable[str], chip: str, memory: str = "nor") -> OperationResult:
    """
    Normalize images without touching hardware.

    Returns:
        OperationResult with regions/checksums filled and
        metadata["chunks"] holding the FlashChunk list
    """
    operation = "inspect"
    with _capture_logs() as logs:
        try:
            profile = get_chip_profile(chip, memory)
            chunks = normalize(files, ram_base=profile.ram_window_base)
        except (UnsupportedChipError, ImageError) as e:
            return OperationResult.failure(operation, str(e), chip=f"{chip}/{memory}", logs=logs)

        result = OperationResult(ok=True, operation=operation, chip=f"{profile.chip}/{profile.memory.value}")
        for chunk in chunks:
            result.regions.append(_region(chunk))
            result.checksums[f"0x{chunk.address:08X}"] = f"0x{chunk.crc32:08X}"
        if not chunks:
            result.add_warning("No flash data found in the given files")
        result.metadata["chunks"] = chunks
        result.logs = logs
        return result


def start_stub(
    config: SessionConfig,
    profile: ChipProfile,
    probe_factory: ProbeFactory = PyOCDProbe.open,
) -> None:
    """
    Attach through the debug probe and start the RAM stub.

    Attach/halt/write failures (ProbeError) are retried up to
    ``config.connect_attempts`` times; <= 0 retries forever. Missing probes
    and missing stubs fail immediately.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            probe = probe_factory(config.port, profile.chip)
            try:
                bootstrap(
                    profile,
                    probe,
                    compat=config.compat,
                    reset=config.before is ResetMode.SOFT_RESET,
                    stub_dir=config.stub_dir,
                )
            finally:
                probe.close()
            return
        except ProbeError as e:
            if 0 < config.connect_attempts <= attempt:
                raise
            logger.warning(f"Connect attempt {attempt} failed: {e}, retrying...")
            time.sleep(RETRY_DELAY)


def open_session(
    config: SessionConfig,
    transport_factory: TransportFactory = open_serial,
) -> FlashSession:
    """Open the serial line to the running stub and apply the requested baud rate."""
    transport = transport_factory(config.port, DEFAULT_BAUD_RATE)
    try:
        release_debug_console(transport)
        session = FlashSession(transport, compat=config.compat, baud=DEFAULT_BAUD_RATE)
        if config.baud != DEFAULT_BAUD_RATE:
            session.set_speed(config.baud)
    except Exception:
        _close_transport(transport)
        raise
    return session


def flash_firmware(
    config: SessionConfig,
    params: WriteFlashParams,
    progress_cb: Optional[ProgressCallback] = None,
    probe_factory: ProbeFactory = PyOCDProbe.open,
    transport_factory: TransportFactory = open_serial,
) -> OperationResult:
    """
    Full write_flash workflow: normalize, bootstrap, connect, write, reset.

    Args:
        config: Session settings
        params: write_flash options and input files
        progress_cb: Optional per-chunk progress callback
        probe_factory: Callable(port, chip) -> DebugProbe
        transport_factory: Callable(port, baud) -> open Transport

    Returns:
        OperationResult with:
            - ok: True if every chunk was committed (and verified)
            - regions: flash ranges of all chunks
            - bytes_len: bytes actually written
            - checksums: CRC32 per chunk
            - metadata["written"/"skipped"/"verified"/"erased_banks"]
            - metadata["error_type"]: exception class name on failure
    """
    operation = "write_flash"
    chip_label = f"{config.chip}/{config.memory}"

    with _capture_logs() as logs:
        try:
            profile = get_chip_profile(config.chip, config.memory)
            chunks = normalize(params.files, ram_base=profile.ram_window_base)
        except (UnsupportedChipError, ImageError) as e:
            logger.error(str(e))
            result = OperationResult.failure(operation, str(e), chip=chip_label, logs=logs)
            result.metadata["error_type"] = type(e).__name__
            return result

        result = OperationResult(ok=True, operation=operation, chip=chip_label, logs=logs)
        for chunk in chunks:
            result.regions.append(_region(chunk))
            result.checksums[f"0x{chunk.address:08X}"] = f"0x{chunk.crc32:08X}"

        session: Optional[FlashSession] = None
        try:
            start_stub(config, profile, probe_factory)
            session = open_session(config, transport_factory)
            report = write_flash(session, params, chunks, progress_cb)
            if config.after is ResetMode.SOFT_RESET:
                session.soft_reset()
        except (BootstrapError, ProtocolError, TransportError, FlashError) as e:
            logger.error(str(e))
            result.add_error(str(e))
            result.metadata["error_type"] = type(e).__name__
            return result
        finally:
            if session is not None:
                _close_transport(session.transport)

        result.bytes_len = report.bytes_written
        result.metadata.update(
            {
                "written": [f"0x{a:08X}" for a in report.written],
                "skipped": [f"0x{a:08X}" for a in report.skipped],
                "verified": [f"0x{a:08X}" for a in report.verified],
                "erased_banks": [f"0x{a:08X}" for a in report.erased_banks],
            }
        )
        if params.no_compress:
            result.add_warning("--no-compress has no effect: transfers are never compressed")
        return result


def _close_transport(transport: Transport) -> None:
    close = getattr(transport, "close", None)
    if close is not None:
        close()
