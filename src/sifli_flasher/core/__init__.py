"""
Core module for SiFli Flasher.

This module provides the single source of truth for:
- Session settings and the live stub connection (session.py)
- Flash write orchestration (write_flash.py)
- Result objects (results.py)
- End-to-end workflows (actions.py)

The CLI should call into this module rather than driving the protocol
itself.
"""

from .session import FlashSession, ResetMode, SessionConfig
from .results import OperationResult
from .write_flash import (
    FlashError,
    WriteError,
    VerifyError,
    WriteFlashParams,
    WriteFlashReport,
    ProgressCallback,
    write_flash,
)
from .actions import (
    flash_firmware,
    inspect_images,
    start_stub,
    open_session,
)

__all__ = [
    # Session
    "FlashSession",
    "ResetMode",
    "SessionConfig",
    # Results
    "OperationResult",
    # Write flash
    "FlashError",
    "WriteError",
    "VerifyError",
    "WriteFlashParams",
    "WriteFlashReport",
    "ProgressCallback",
    "write_flash",
    # Actions
    "flash_firmware",
    "inspect_images",
    "start_stub",
    "open_session",
]
