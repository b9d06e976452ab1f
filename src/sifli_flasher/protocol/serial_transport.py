"""
Serial Transport Layer

Handles low-level serial communication with the RAM stub.

This module provides:
- Serial port initialization and configuration
- Raw writes and single-byte reads with a per-call timeout
- Input buffer clearing and runtime baud-rate changes

The Burn Protocol codec only needs the small Transport interface below, so
tests can swap in an in-memory fake.
"""

import logging
from typing import Optional, Protocol

import serial

logger = logging.getLogger(__name__)

DEFAULT_BAUD_RATE = 1000000
DEFAULT_TIMEOUT = 5.0


class TransportError(Exception):
    """Serial port could not be opened, read or written."""


class Transport(Protocol):
    """Byte stream capability required by the Burn Protocol codec."""

    def write(self, data: bytes) -> None: ...

    def read_byte(self, timeout: float) -> Optional[bytes]: ...

    def flush(self) -> None: ...

    def clear_input(self) -> None: ...

    def set_baudrate(self, baudrate: int) -> None: ...


class SerialTransport:
    """
    pyserial-backed transport for the RAM stub serial line.

    Example:
        transport = SerialTransport(port="/dev/ttyUSB0")
        transport.open()
        transport.write(b"burn_reset\\r")
        byte = transport.read_byte(timeout=0.1)
        transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUD_RATE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize transport layer.

        Args:
            port: Serial port (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Serial baud rate (default 1000000, the stub's boot rate)
            timeout: Default read/write timeout in seconds
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.ser: Optional[serial.Serial] = None

    def open(self) -> None:
        """
        Open serial port.

        Raises:
            TransportError: If port cannot be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=8,
                parity="N",
                stopbits=1,
                timeout=self.timeout,
                write_timeout=self.timeout,
            )
            logger.debug(
                f"Opened {self.port} at {self.baudrate} bps (timeout={self.timeout}s)"
            )
        except serial.SerialException as e:
            raise TransportError(f"Cannot open port {self.port}: {e}")

    def close(self) -> None:
        """Close serial port."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")

    def __enter__(self) -> "SerialTransport":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> serial.Serial:
        if not self.ser or not self.ser.is_open:
            raise TransportError("Serial port not open")
        return self.ser

    def write(self, data: bytes) -> None:
        """
        Send raw bytes.

        Raises:
            TransportError: If write fails or is incomplete
        """
        ser = self._require_open()
        try:
            written = ser.write(data)
        except serial.SerialException as e:
            raise TransportError(f"Write error: {e}")
        if written is not None and written != len(data):
            raise TransportError(f"Incomplete write: sent {written}/{len(data)} bytes")

    def read_byte(self, timeout: float) -> Optional[bytes]:
        """
        Read a single byte, waiting at most ``timeout`` seconds.

        Returns:
            One byte, or None if nothing arrived in time
        """
        ser = self._require_open()
        try:
            if ser.timeout != timeout:
                ser.timeout = timeout
            data = ser.read(1)
        except serial.SerialException as e:
            raise TransportError(f"Read error: {e}")
        return data or None

    def flush(self) -> None:
        """Block until all written bytes are transmitted."""
        ser = self._require_open()
        try:
            ser.flush()
        except serial.SerialException as e:
            raise TransportError(f"Flush error: {e}")

    def clear_input(self) -> None:
        """Discard anything waiting in the receive buffer."""
        ser = self._require_open()
        try:
            ser.reset_input_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Cannot clear input buffer: {e}")

    def set_baudrate(self, baudrate: int) -> None:
        """Change the local baud rate of the open port."""
        ser = self._require_open()
        try:
            ser.baudrate = baudrate
        except (serial.SerialException, ValueError) as e:
            raise TransportError(f"Cannot set baud rate {baudrate}: {e}")
        self.baudrate = baudrate
        logger.debug(f"{self.port} switched to {baudrate} bps")


def open_serial(
    port: str,
    baudrate: int = DEFAULT_BAUD_RATE,
    timeout: float = DEFAULT_TIMEOUT,
) -> SerialTransport:
    """
    Open a serial transport connection.

    Returns:
        SerialTransport instance (already open)
    """
    transport = SerialTransport(port, baudrate, timeout)
    transport.open()
    return transport
