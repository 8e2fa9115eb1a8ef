"""Shared fixtures: a simulated key firmware behind an in-memory transport."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

import pytest

from tkey_mcp.errors import TransportError
from tkey_mcp.protocol.commands import EXCHANGES, STATUS_OK, Command
from tkey_mcp.protocol.framing import Endpoint, LengthClass, encode_header, parse_header

NAME_VERSION_RAW = b"fdkm" + b"1atm" + (5).to_bytes(4, "little")
UDI_VPR = (0x1 << 28) | (0x1337 << 12) | (2 << 6) | 1
UDI_RAW = UDI_VPR.to_bytes(4, "little") + (0xDEADBEEF).to_bytes(4, "little")


@dataclass
class ReceivedFrame:
    """A command frame as seen by the simulated firmware."""

    raw: bytes
    command: int
    payload: bytes

    @property
    def header(self):
        return parse_header(self.raw[0])


@dataclass
class FakeFirmware:
    """Speaks the firmware side of the framing protocol.

    Every write is parsed as one command frame and the matching response
    frame is queued for the next reads. Knobs let tests make the device
    misbehave.
    """

    status: dict[Command, int] = field(default_factory=dict)
    response_code: dict[Command, int] = field(default_factory=dict)
    response_len: dict[Command, LengthClass] = field(default_factory=dict)
    response_endpoint: Endpoint = Endpoint.FIRMWARE
    not_ok: set = field(default_factory=set)
    digest_override: bytes | None = None
    # Fail the N-th load-app-data chunk (1-based) with status BAD
    bad_chunk: int | None = None
    silent: set = field(default_factory=set)

    frames: list[ReceivedFrame] = field(default_factory=list)
    timeouts: list = field(default_factory=list)
    closed: bool = False
    app_size: int = 0
    app: bytearray = field(default_factory=bytearray)
    uss_digest: bytes | None = None
    running: bool = False
    _outbox: bytearray = field(default_factory=bytearray)

    # -- transport interface -------------------------------------------

    @property
    def connected(self) -> bool:
        return not self.closed

    def close(self) -> None:
        self.closed = True

    def set_read_timeout(self, seconds) -> None:
        self.timeouts.append(seconds)

    def write(self, data: bytes) -> int:
        if self.closed:
            raise TransportError("Not connected to device")
        header = parse_header(data[0])
        assert len(data) == 1 + header.length_class.body_size
        frame = ReceivedFrame(raw=bytes(data), command=data[1], payload=bytes(data[2:]))
        self.frames.append(frame)
        self._handle(Command(frame.command), frame)
        return len(data)

    def read_exactly(self, n: int) -> bytes:
        if self.closed:
            raise TransportError("Not connected to device")
        if len(self._outbox) < n:
            raise TransportError(f"Read timeout: got {len(self._outbox)} of {n} bytes")
        data = bytes(self._outbox[:n])
        del self._outbox[:n]
        return data

    # -- inspection helpers --------------------------------------------

    def commands(self) -> list[int]:
        return [f.command for f in self.frames]

    def count(self, command: Command) -> int:
        return self.commands().count(command)

    def data_chunks(self) -> list[ReceivedFrame]:
        return [f for f in self.frames if f.command == Command.LOAD_APP_DATA]

    # -- firmware behaviour --------------------------------------------

    def _reply(self, command: Command, payload: bytes, exchange_id: int) -> None:
        if command in self.silent:
            return
        exchange = EXCHANGES[command]
        length_class = self.response_len.get(command, exchange.response_len)
        header = encode_header(exchange_id, self.response_endpoint, length_class)
        if command in self.not_ok:
            header |= 0x04
        body = bytearray(length_class.body_size)
        body[0] = self.response_code.get(command, exchange.response)
        body[1 : 1 + len(payload)] = payload[: length_class.body_size - 1]
        self._outbox += bytes([header]) + body

    def _status(self, command: Command) -> bytes:
        return bytes([self.status.get(command, STATUS_OK)])

    def _handle(self, command: Command, frame: ReceivedFrame) -> None:
        exchange_id = frame.header.exchange_id
        body = frame.payload

        if command == Command.GET_NAME_VERSION:
            self._reply(command, NAME_VERSION_RAW, exchange_id)
        elif command == Command.GET_UDI:
            self._reply(command, UDI_RAW, exchange_id)
        elif command == Command.LOAD_APP_SIZE:
            self.app_size = int.from_bytes(body[0:4], "little")
            self.app = bytearray()
            self.uss_digest = bytes(body[5:37]) if body[4] == 1 else None
            self._reply(command, self._status(command), exchange_id)
        elif command == Command.LOAD_APP_DATA:
            nbytes = min(LengthClass.LEN_128.capacity, self.app_size - len(self.app))
            self.app += body[:nbytes]
            status = self._status(command)
            if self.bad_chunk is not None and len(self.data_chunks()) == self.bad_chunk:
                status = b"\x01"
            self._reply(command, status, exchange_id)
        elif command == Command.GET_APP_DIGEST:
            digest = self.digest_override
            if digest is None:
                digest = hashlib.blake2s(bytes(self.app), digest_size=32).digest()
            self._reply(command, digest, exchange_id)
        elif command == Command.RUN_APP:
            self.running = self.status.get(command, STATUS_OK) == STATUS_OK
            self._reply(command, self._status(command), exchange_id)


@pytest.fixture
def firmware() -> FakeFirmware:
    return FakeFirmware()
