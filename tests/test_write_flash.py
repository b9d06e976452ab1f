"""Tests for the flash write orchestrator against a scripted stub."""

import pytest

from sifli_flasher.core import (
    FlashSession,
    VerifyError,
    WriteError,
    WriteFlashParams,
    write_flash,
)
from sifli_flasher.core.write_flash import STREAM_BUFFER_SIZE, bank_of
from sifli_flasher.image import FlashChunk
from sifli_flasher.protocol import BurnProtocol, ProtocolTimeoutError, Response

from conftest import FakeTransport


def make_session(replies, compat=False):
    transport = FakeTransport(replies)
    protocol = BurnProtocol(transport, compat=compat, timeout=0.05, erase_timeout=0.05)
    return FlashSession(transport, compat=compat, protocol=protocol), transport


def chunk_at(address, size=16, fill=0x5A):
    return FlashChunk.from_bytes(address, bytes([fill]) * size)


def test_bank_of() -> None:
    assert bank_of(0x12345678) == 0x12000000
    assert bank_of(0x10000000) == 0x10000000


class TestEraseWritePath:
    """Per-chunk verify -> erase_write -> stream -> verify."""

    def test_unchanged_chunk_is_skipped(self):
        session, transport = make_session(["OK"])
        chunk = chunk_at(0x12000000)

        report = write_flash(session, WriteFlashParams(), [chunk])

        assert report.skipped == [0x12000000]
        assert report.written == []
        assert transport.commands == [f"burn_verify 0x12000000 0x00000010 0x{chunk.crc32:08x}"]
        assert transport.payloads() == []

    def test_write_and_verify(self):
        session, transport = make_session(["Fail", "RX_WAIT", "OK", "OK"])
        chunk = chunk_at(0x12000000)

        report = write_flash(session, WriteFlashParams(), [chunk])

        assert report.written == [0x12000000]
        assert report.verified == [0x12000000]
        assert report.bytes_written == 16
        assert transport.commands == [
            f"burn_verify 0x12000000 0x00000010 0x{chunk.crc32:08x}",
            "burn_erase_write 0x12000000 0x00000010",
            f"burn_verify 0x12000000 0x00000010 0x{chunk.crc32:08x}",
        ]
        assert transport.payloads() == [chunk.data]

    def test_no_verify_skips_final_check(self):
        session, transport = make_session(["Fail", "RX_WAIT", "OK"])
        report = write_flash(session, WriteFlashParams(verify=False), [chunk_at(0x12000000)])
        assert report.verified == []
        assert len(transport.commands) == 2

    def test_rx_wait_backpressure(self):
        size = 2 * STREAM_BUFFER_SIZE + 0x1000
        chunk = chunk_at(0x12000000, size=size)
        session, transport = make_session(["Fail", "RX_WAIT", "RX_WAIT", "RX_WAIT", "OK"])

        write_flash(session, WriteFlashParams(verify=False), [chunk])

        assert [len(p) for p in transport.payloads()] == [
            STREAM_BUFFER_SIZE,
            STREAM_BUFFER_SIZE,
            0x1000,
        ]
        assert b"".join(transport.payloads()) == chunk.data

    def test_ok_ends_stream_early(self):
        chunk = chunk_at(0x12000000, size=2 * STREAM_BUFFER_SIZE)
        session, transport = make_session(["Fail", "RX_WAIT", "OK"])

        report = write_flash(session, WriteFlashParams(verify=False), [chunk])

        assert len(transport.payloads()) == 1
        assert report.written == [0x12000000]

    def test_rx_wait_after_last_buffer_is_tolerated(self):
        session, transport = make_session(["Fail", "RX_WAIT", "RX_WAIT"])
        report = write_flash(session, WriteFlashParams(verify=False), [chunk_at(0x12000000)])
        assert report.written == [0x12000000]

    def test_compat_mode_uses_small_buffers(self, no_sleep):
        chunk = chunk_at(0x12000000, size=600)
        session, transport = make_session(["Fail", "RX_WAIT", "RX_WAIT", "RX_WAIT", "OK"], compat=True)

        write_flash(session, WriteFlashParams(verify=False), [chunk])

        assert [len(p) for p in transport.payloads()] == [256, 256, 88]

    def test_erase_write_must_answer_rx_wait(self):
        session, transport = make_session(["Fail", "OK"])

        with pytest.raises(WriteError) as exc_info:
            write_flash(session, WriteFlashParams(), [chunk_at(0x12000000)])

        assert exc_info.value.operation == "erase_write"
        assert exc_info.value.response is Response.OK
        assert transport.payloads() == []

    def test_payload_fail_aborts(self):
        session, transport = make_session(["Fail", "RX_WAIT", "Fail"])
        with pytest.raises(WriteError) as exc_info:
            write_flash(session, WriteFlashParams(), [chunk_at(0x12000000), chunk_at(0x12010000)])
        assert exc_info.value.response is Response.FAIL
        assert len(transport.commands) == 2

    def test_verify_failure_stops_remaining_chunks(self):
        first = chunk_at(0x12000000)
        second = chunk_at(0x12010000)
        session, transport = make_session(["Fail", "RX_WAIT", "OK", "Fail"])

        with pytest.raises(VerifyError) as exc_info:
            write_flash(session, WriteFlashParams(), [first, second])

        assert exc_info.value.address == 0x12000000
        assert all("0x12010000" not in c for c in transport.commands)

    def test_silent_stub_times_out(self):
        session, _ = make_session([])
        with pytest.raises(ProtocolTimeoutError):
            write_flash(session, WriteFlashParams(), [chunk_at(0x12000000)])


class TestEraseAllPath:
    """Bulk erase per bank, then burn_write per buffer."""

    def test_one_erase_per_bank(self):
        chunks = [chunk_at(0x10000000), chunk_at(0x12000000), chunk_at(0x12010000)]
        session, transport = make_session(["OK", "OK", "OK", "OK", "OK"])

        report = write_flash(session, WriteFlashParams(erase_all=True, verify=False), chunks)

        erases = [c for c in transport.commands if c.startswith("burn_erase_all")]
        assert erases == ["burn_erase_all 0x10000000", "burn_erase_all 0x12000000"]
        assert report.erased_banks == [0x10000000, 0x12000000]
        assert report.written == [0x10000000, 0x12000000, 0x12010000]
        # no pre-write check on this path
        assert not any(c.startswith("burn_verify") for c in transport.commands)

    def test_each_buffer_gets_its_own_write(self):
        chunk = chunk_at(0x12000000, size=STREAM_BUFFER_SIZE + 8)
        session, transport = make_session(["OK", "OK", "OK"])

        write_flash(session, WriteFlashParams(erase_all=True, verify=False), [chunk])

        assert transport.commands[1:] == [
            f"burn_write 0x12000000 0x{STREAM_BUFFER_SIZE:08x}",
            f"burn_write 0x{0x12000000 + STREAM_BUFFER_SIZE:08x} 0x00000008",
        ]

    def test_erase_failure(self):
        session, _ = make_session(["Fail"])
        with pytest.raises(WriteError) as exc_info:
            write_flash(session, WriteFlashParams(erase_all=True), [chunk_at(0x12000000)])
        assert exc_info.value.operation == "erase_all"

    def test_buffer_must_be_acknowledged_ok(self):
        session, _ = make_session(["OK", "RX_WAIT"])
        with pytest.raises(WriteError):
            write_flash(session, WriteFlashParams(erase_all=True), [chunk_at(0x12000000)])


def test_progress_events() -> None:
    events = []
    unchanged = chunk_at(0x10000000)
    changed = chunk_at(0x12000000)
    session, _ = make_session(["OK", "Fail", "RX_WAIT", "OK"])

    write_flash(
        session,
        WriteFlashParams(verify=False),
        [unchanged, changed],
        progress_cb=lambda event, chunk, done, total: events.append((event, chunk.address, done, total)),
    )

    assert events == [
        ("skip", 0x10000000, 16, 16),
        ("start", 0x12000000, 0, 16),
        ("progress", 0x12000000, 16, 16),
        ("done", 0x12000000, 16, 16),
    ]


def test_no_compress_changes_nothing_on_the_wire() -> None:
    session, transport = make_session(["Fail", "RX_WAIT", "OK"])
    write_flash(session, WriteFlashParams(verify=False, no_compress=True), [chunk_at(0x12000000)])
    assert transport.payloads() == [bytes([0x5A]) * 16]
