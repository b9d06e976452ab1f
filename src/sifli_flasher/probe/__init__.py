"""Debug probe access and RAM stub bootstrap."""

from .debug_probe import (
    DebugProbe,
    PyOCDProbe,
    BootstrapError,
    ProbeNotFoundError,
    ProbeError,
    find_probe,
    list_probe_ids,
)
from .bootstrap import (
    StubImage,
    StubNotFoundError,
    bootstrap,
    download_stub,
    load_stub_image,
    release_debug_console,
    stub_search_dir,
    CONSOLE_RELEASE_MAGIC,
    STUB_DIR_ENV,
)

__all__ = [
    # Probe
    "DebugProbe",
    "PyOCDProbe",
    "BootstrapError",
    "ProbeNotFoundError",
    "ProbeError",
    "find_probe",
    "list_probe_ids",
    # Bootstrap
    "StubImage",
    "StubNotFoundError",
    "bootstrap",
    "download_stub",
    "load_stub_image",
    "release_debug_console",
    "stub_search_dir",
    "CONSOLE_RELEASE_MAGIC",
    "STUB_DIR_ENV",
]
