"""Tests for Burn Protocol command encoding and response scanning."""

import pytest

from sifli_flasher.protocol import (
    BurnProtocol,
    EraseAll,
    ProtocolTimeoutError,
    Response,
    SetBaud,
    SoftReset,
    TokenMatcher,
    Verify,
    Write,
    WriteAndErase,
)
from sifli_flasher.protocol.burn_protocol import COMPAT_PIECE_SIZE

from conftest import FakeTransport


class TestCommandEncoding:
    """Wire text must match the stub's parser byte for byte."""

    def test_erase_all(self):
        assert EraseAll(0x12000000).encode() == b"burn_erase_all 0x12000000\r"

    def test_verify(self):
        assert (
            Verify(0x12000000, 0x10, 0xDEADBEEF).encode()
            == b"burn_verify 0x12000000 0x00000010 0xdeadbeef\r"
        )

    def test_erase_write(self):
        assert WriteAndErase(0x10000000, 0x2000).encode() == b"burn_erase_write 0x10000000 0x00002000\r"

    def test_write(self):
        assert Write(0x10000000, 0x100).encode() == b"burn_write 0x10000000 0x00000100\r"

    def test_reset(self):
        assert SoftReset().encode() == b"burn_reset\r"

    def test_speed(self):
        assert SetBaud(3000000, 500).encode() == b"burn_speed 3000000 500\r"


class TestTokenMatcher:
    def test_token_in_noise(self):
        matcher = TokenMatcher()
        assert matcher.feed(b"garbage...RX_WAITmore") is Response.RX_WAIT

    def test_first_token_wins(self):
        assert TokenMatcher().feed(b"..Fail..OK") is Response.FAIL

    def test_split_across_feeds(self):
        matcher = TokenMatcher()
        assert matcher.feed(b"log: R") is None
        assert matcher.feed(b"X_WA") is None
        assert matcher.feed(b"IT") is Response.RX_WAIT

    def test_no_token(self):
        matcher = TokenMatcher()
        assert matcher.feed(b"O K Fai l RX_WAI") is None
        assert matcher.received == 16


class TestBurnProtocol:
    def test_command_waits_for_token(self):
        transport = FakeTransport(["boot log\r\nOK\r\n"])
        protocol = BurnProtocol(transport)

        response = protocol.send_command(Verify(0x12000000, 4, 0x1234))

        assert response is Response.OK
        assert transport.commands == ["burn_verify 0x12000000 0x00000004 0x00001234"]
        assert transport.cleared == 1

    def test_fail_is_a_response_not_a_timeout(self):
        protocol = BurnProtocol(FakeTransport(["Fail"]), timeout=0.2)
        assert protocol.send_command(Verify(0, 1, 0)) is Response.FAIL

    def test_silence_times_out(self):
        protocol = BurnProtocol(FakeTransport(["no token here"]), timeout=0.05)
        with pytest.raises(ProtocolTimeoutError) as exc_info:
            protocol.send_command(Verify(0, 1, 0))
        assert exc_info.value.operation == "Verify"
        assert exc_info.value.received == len("no token here")

    def test_set_baud_does_not_wait(self):
        transport = FakeTransport()
        protocol = BurnProtocol(transport, timeout=0.05)

        assert protocol.send_command(SetBaud(3000000)) is None
        assert transport.commands == ["burn_speed 3000000 500"]

    def test_erase_all_uses_longer_deadline(self):
        protocol = BurnProtocol(FakeTransport(), timeout=0.01, erase_timeout=0.05)
        with pytest.raises(ProtocolTimeoutError) as exc_info:
            protocol.send_command(EraseAll(0x12000000))
        assert exc_info.value.timeout == 0.05

    def test_payload_in_one_write(self):
        transport = FakeTransport(["RX_WAIT"])
        protocol = BurnProtocol(transport)

        assert protocol.send_payload(b"\x00" * 1000) is Response.RX_WAIT
        assert transport.writes == [b"\x00" * 1000]

    def test_compat_payload_is_fragmented(self, no_sleep):
        transport = FakeTransport(["OK"])
        protocol = BurnProtocol(transport, compat=True)
        data = bytes(range(256)) * 2 + b"tail"

        assert protocol.send_payload(data) is Response.OK
        assert [len(w) for w in transport.writes] == [COMPAT_PIECE_SIZE, COMPAT_PIECE_SIZE, 4]
        assert b"".join(transport.writes) == data
