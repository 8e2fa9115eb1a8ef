"""Transport layer: the serial port the key is attached to."""

from .serial_connection import SerialConnection, detect_serial_port
