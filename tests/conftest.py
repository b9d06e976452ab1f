"""Shared in-memory fakes for the serial line and the debug probe."""

from collections import deque
from typing import List, Optional

import pytest

from sifli_flasher.probe import ProbeError


class FakeTransport:
    """
    Scripted serial line.

    ``replies`` are handed out one per read burst: whenever the receive
    buffer runs dry, the next reply is queued behind it. An exhausted script
    reads as silence.
    """

    def __init__(self, replies=()):
        self.replies = deque(r.encode("ascii") if isinstance(r, str) else r for r in replies)
        self.rx = bytearray()
        self.writes: List[bytes] = []
        self.baud_changes: List[int] = []
        self.cleared = 0
        self.flushed = 0
        self.closed = False

    def write(self, data: bytes) -> None:
        self.writes.append(bytes(data))

    def read_byte(self, timeout: float) -> Optional[bytes]:
        if not self.rx and self.replies:
            self.rx.extend(self.replies.popleft())
        if not self.rx:
            return None
        byte = bytes(self.rx[:1])
        del self.rx[0]
        return byte

    def flush(self) -> None:
        self.flushed += 1

    def clear_input(self) -> None:
        self.rx.clear()
        self.cleared += 1

    def set_baudrate(self, baudrate: int) -> None:
        self.baud_changes.append(baudrate)

    def close(self) -> None:
        self.closed = True

    @property
    def commands(self) -> List[str]:
        """Text commands written, without the trailing CR."""
        return [
            w.decode("ascii").rstrip("\r")
            for w in self.writes
            if w.startswith(b"burn_")
        ]

    def payloads(self) -> List[bytes]:
        return [w for w in self.writes if not w.startswith(b"burn_")]


class FakeProbe:
    """Records probe calls; ``fail_halts`` makes the first N halts fail."""

    def __init__(self, fail_halts: int = 0):
        self.calls: List[tuple] = []
        self.memory = {}
        self.registers = {}
        self.fail_halts = fail_halts
        self.closed = False

    def halt(self) -> None:
        self.calls.append(("halt",))
        if self.fail_halts > 0:
            self.fail_halts -= 1
            raise ProbeError("halt timed out")

    def reset_and_halt(self) -> None:
        self.calls.append(("reset_and_halt",))

    def write_memory(self, address: int, data: bytes) -> None:
        self.calls.append(("write_memory", address, len(data)))
        self.memory[address] = bytes(data)

    def write_core_register(self, name: str, value: int) -> None:
        self.calls.append(("write_core_register", name, value))
        self.registers[name] = value

    def resume(self) -> None:
        self.calls.append(("resume",))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip real delays in bootstrap and compat-mode streaming."""
    import time

    monkeypatch.setattr(time, "sleep", lambda seconds: None)


@pytest.fixture
def stub_dir(tmp_path):
    """Directory with a fake NOR stub: SP 0x20010000, PC 0x2005A101."""
    data = (0x2001_0000).to_bytes(4, "little") + (0x2005_A101).to_bytes(4, "little")
    data += bytes(range(256)) * 2
    (tmp_path / "ram_patch_52X.bin").write_bytes(data)
    return tmp_path
