"""Session with a key in firmware mode.

Typical use::

    with TillitisKey.open("/dev/ttyACM0") as tk:
        print(tk.get_name_version())
        tk.load_app_from_file("app.bin")

After the app is started the firmware commands no longer apply; the
connection then belongs to whatever protocol the app speaks.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .events import Observer, StepEvent, null_observer
from .loader import AppLoader
from .protocol.channel import CommandChannel
from .protocol.commands import Command
from .protocol.parser import UDI, NameVersion, parse_name_version, parse_udi
from .transport.serial_connection import SERIAL_SPEED, SerialConnection

logger = logging.getLogger(__name__)

# Only the first exchange after connecting is bounded, so that a key
# already running an app is noticed quickly.
FIRST_EXCHANGE_TIMEOUT_S = 2.0


class TillitisKey:
    """Firmware-mode commands on an exclusively owned connection."""

    def __init__(self, connection, observer: Observer | None = None) -> None:
        self._connection = connection
        self._observer = observer or null_observer
        self._channel = CommandChannel(connection, observer=self._observer)
        self._loader = AppLoader(self._channel, observer=self._observer)

    @classmethod
    def open(
        cls,
        port: str,
        speed: int = SERIAL_SPEED,
        observer: Observer | None = None,
    ) -> TillitisKey:
        """Open ``port`` and return a session that owns it."""
        connection = SerialConnection(port, speed)
        connection.open()
        return cls(connection, observer=observer)

    @property
    def connection(self):
        return self._connection

    @property
    def loader(self) -> AppLoader:
        return self._loader

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> TillitisKey:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_name_version(self) -> NameVersion:
        """Ask the firmware for its name and version.

        A read timeout is armed for this exchange only.
        """
        self._connection.set_read_timeout(FIRST_EXCHANGE_TIMEOUT_S)
        try:
            payload = self._channel.request(Command.GET_NAME_VERSION)
        finally:
            self._connection.set_read_timeout(None)

        name_version = parse_name_version(payload)
        self._observer(StepEvent("name_version", {
            "name0": name_version.name0,
            "name1": name_version.name1,
            "version": name_version.version,
        }))
        return name_version

    def get_udi(self) -> UDI:
        """Ask the firmware for the Unique Device Identifier."""
        udi = parse_udi(self._channel.request(Command.GET_UDI))
        self._observer(StepEvent("udi", {"udi": str(udi)}))
        return udi

    def load_app(self, binary: bytes, secret: bytes | None = None) -> bytes:
        """Upload, verify and start ``binary``. Returns the app digest."""
        return self._loader.load_app(binary, secret)

    def load_app_from_file(self, path: str | Path, secret: bytes | None = None) -> bytes:
        logger.info("Loading app from %s", path)
        return self._loader.load_app_from_file(path, secret)
