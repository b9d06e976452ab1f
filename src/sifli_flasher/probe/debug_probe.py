"""
Debug probe access for loading the RAM stub.

The bootstrapper only needs a halted core with memory and register write
access. DebugProbe describes that capability; PyOCDProbe implements it on
top of pyOCD. Tests use an in-memory fake with the same methods.
"""

import logging
from typing import List, Optional, Protocol

from pyocd.core.exceptions import Error as PyOCDError
from pyocd.core.helpers import ConnectHelper

logger = logging.getLogger(__name__)


class BootstrapError(Exception):
    """Base exception for probe and stub bootstrap failures."""


class ProbeNotFoundError(BootstrapError):
    """No attached debug probe matches the requested identifier."""

    def __init__(self, port_id: str, available: Optional[List[str]] = None):
        self.port_id = port_id
        self.available = available or []
        detail = f" (found: {', '.join(self.available)})" if self.available else ""
        super().__init__(f"No debug probe found matching '{port_id}'{detail}")


class ProbeError(BootstrapError):
    """Attach, halt, memory or register access on the target failed."""


class DebugProbe(Protocol):
    """Core control capability required by the stub bootstrapper."""

    def halt(self) -> None: ...

    def reset_and_halt(self) -> None: ...

    def write_memory(self, address: int, data: bytes) -> None: ...

    def write_core_register(self, name: str, value: int) -> None: ...

    def resume(self) -> None: ...

    def close(self) -> None: ...


def list_probe_ids() -> List[str]:
    """Unique IDs of all attached probes."""
    try:
        probes = ConnectHelper.get_all_connected_probes(blocking=False)
    except PyOCDError as e:
        raise ProbeError(f"Probe enumeration failed: {e}")
    return [p.unique_id for p in probes]


def find_probe(port_id: str) -> str:
    """
    Find the probe whose serial number contains ``port_id``.

    Returns:
        The full unique ID of the first matching probe

    Raises:
        ProbeNotFoundError: No probe matches
    """
    ids = list_probe_ids()
    for unique_id in ids:
        if unique_id and port_id in unique_id:
            logger.debug(f"Probe '{unique_id}' matches '{port_id}'")
            return unique_id
    raise ProbeNotFoundError(port_id, ids)


class PyOCDProbe:
    """
    DebugProbe backed by a pyOCD session.

    Example:
        with PyOCDProbe.open("/dev/ttyUSB0", "SF32LB52") as probe:
            probe.reset_and_halt()
            probe.write_memory(0x2005A000, stub)
    """

    def __init__(self, session):
        self.session = session
        self.target = session.target

    @classmethod
    def open(cls, port_id: str, chip: str, frequency: Optional[int] = None) -> "PyOCDProbe":
        """
        Attach to ``chip`` through the probe matching ``port_id``.

        Raises:
            ProbeNotFoundError: No matching probe
            ProbeError: Session could not be opened
        """
        unique_id = find_probe(port_id)
        options = {"resume_on_disconnect": False}
        if frequency:
            options["frequency"] = frequency
        session = None
        try:
            session = ConnectHelper.session_with_chosen_probe(
                blocking=False,
                unique_id=unique_id,
                target_override=chip.lower(),
                options=options,
            )
            if session is None:
                raise ProbeNotFoundError(port_id)
            session.open()
        except PyOCDError as e:
            if session is not None:
                session.close()
            raise ProbeError(f"Cannot attach to {chip} via {unique_id}: {e}")
        logger.info(f"Attached to {chip} via probe {unique_id}")
        return cls(session)

    def __enter__(self) -> "PyOCDProbe":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def halt(self) -> None:
        try:
            self.target.halt()
        except PyOCDError as e:
            raise ProbeError(f"Halt failed: {e}")

    def reset_and_halt(self) -> None:
        try:
            self.target.reset_and_halt()
        except PyOCDError as e:
            raise ProbeError(f"Reset and halt failed: {e}")

    def write_memory(self, address: int, data: bytes) -> None:
        try:
            self.target.write_memory_block8(address, data)
        except PyOCDError as e:
            raise ProbeError(f"Memory write at 0x{address:08X} failed: {e}")

    def write_core_register(self, name: str, value: int) -> None:
        try:
            self.target.write_core_register(name, value)
        except PyOCDError as e:
            raise ProbeError(f"Writing register {name} failed: {e}")

    def resume(self) -> None:
        try:
            self.target.resume()
        except PyOCDError as e:
            raise ProbeError(f"Resume failed: {e}")

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
