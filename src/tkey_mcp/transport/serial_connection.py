"""Serial connection to the key.

The key enumerates as a USB CDC serial device. This module owns the
pyserial port and knows nothing about frames: it writes bytes and reads
exactly the number of bytes it is asked for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial
import serial.tools.list_ports

from ..errors import TransportError

logger = logging.getLogger(__name__)

VENDOR_ID = 0x1207
PRODUCT_ID = 0x8887
SERIAL_SPEED = 62500


@dataclass
class PortInfo:
    """Basic identification of the opened port."""

    port: str = ""
    speed: int = SERIAL_SPEED


def detect_serial_port(
    vendor_id: int = VENDOR_ID,
    product_id: int = PRODUCT_ID,
) -> str:
    """Find the serial device node of a single attached key.

    Raises:
        TransportError: If no key, or more than one, is attached.
    """
    matches = [
        p for p in serial.tools.list_ports.comports()
        if p.vid == vendor_id and p.pid == product_id
    ]
    if not matches:
        raise TransportError(
            f"No key found ({vendor_id:#06x}:{product_id:#06x}). "
            f"Ensure it is plugged in or pass the port explicitly."
        )
    if len(matches) > 1:
        ports = ", ".join(p.device for p in matches)
        raise TransportError(
            f"More than one key found ({ports}); pass the port explicitly."
        )
    logger.debug("Detected key on %s", matches[0].device)
    return matches[0].device


class SerialConnection:
    """Manages the serial connection to the key.

    Usage::

        with SerialConnection("/dev/ttyACM0") as conn:
            conn.write(frame_bytes)
            header = conn.read_exactly(1)

    Only one call may be outstanding at a time. Reads block without a
    timeout unless :meth:`set_read_timeout` armed one.
    """

    def __init__(self, port: str, speed: int = SERIAL_SPEED) -> None:
        self._port = port
        self._speed = speed
        self._serial: serial.Serial | None = None
        self._info = PortInfo(port=port, speed=speed)

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def port_info(self) -> PortInfo:
        return self._info

    def open(self) -> PortInfo:
        """Open the serial port.

        Raises:
            TransportError: If the port cannot be opened.
        """
        try:
            self._serial = serial.Serial(
                port=self._port,
                baudrate=self._speed,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=None,
            )
        except serial.SerialException as e:
            raise TransportError(f"Could not open {self._port}: {e}") from e

        logger.info("Opened %s at %d bps", self._port, self._speed)
        return self._info

    def close(self) -> None:
        """Close the port. Unblocks a read pending in another thread."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            raise TransportError(f"Could not close {self._port}: {e}") from e
        finally:
            self._serial = None
            logger.info("Closed %s", self._port)

    def __enter__(self) -> SerialConnection:
        if not self.connected:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> serial.Serial:
        if self._serial is None or not self._serial.is_open:
            raise TransportError("Not connected to device")
        return self._serial

    def set_read_timeout(self, seconds: float | None) -> None:
        """Arm a read timeout, or pass None to block until data arrives."""
        port = self._require_open()
        port.timeout = seconds

    def write(self, data: bytes) -> int:
        """Write all of ``data`` to the port.

        Raises:
            TransportError: If not connected or the write fails.
        """
        port = self._require_open()
        try:
            written = port.write(data)
            port.flush()
        except serial.SerialException as e:
            raise TransportError(f"Write to {self._port} failed: {e}") from e
        if written is not None and written != len(data):
            raise TransportError(
                f"Short write to {self._port}: {written} of {len(data)} bytes"
            )
        return len(data)

    def read_exactly(self, n: int) -> bytes:
        """Read exactly ``n`` bytes.

        Raises:
            TransportError: On a pyserial error, or if the read timed out
                before ``n`` bytes arrived.
        """
        port = self._require_open()
        try:
            data = port.read(n)
        except (serial.SerialException, TypeError, AttributeError) as e:
            # pyserial raises TypeError/AttributeError when the port is
            # closed underneath a blocking read.
            raise TransportError(f"Read from {self._port} failed: {e}") from e
        if len(data) != n:
            raise TransportError(
                f"Read timeout on {self._port}: got {len(data)} of {n} bytes"
            )
        return bytes(data)
