"""Firmware command and response codes and payload builders.

Each firmware command has a paired response code. The response carries
either data (name/version, digest, UDI) or a single status byte telling
whether the device accepted the command.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .framing import LengthClass

MAX_APP_SIZE = 65536
DIGEST_SIZE = 32

STATUS_OK = 0x00
STATUS_BAD = 0x01


class Command(IntEnum):
    """Host to firmware command codes."""

    GET_NAME_VERSION = 0x01
    LOAD_APP_SIZE = 0x03
    LOAD_APP_DATA = 0x05
    RUN_APP = 0x07
    GET_APP_DIGEST = 0x09
    GET_UDI = 0x0B


class Response(IntEnum):
    """Firmware to host response codes."""

    GET_NAME_VERSION = 0x02
    LOAD_APP_SIZE = 0x04
    LOAD_APP_DATA = 0x06
    RUN_APP = 0x08
    GET_APP_DIGEST = 0x0A
    GET_UDI = 0x0C
    UNKNOWN_COMMAND = 0xFF


@dataclass(frozen=True)
class Exchange:
    """One command and the response that must answer it."""

    command: Command
    command_len: LengthClass | None  # None: chosen from the payload size
    response: Response
    response_len: LengthClass
    has_status: bool


EXCHANGES: dict[Command, Exchange] = {
    Command.GET_NAME_VERSION: Exchange(
        Command.GET_NAME_VERSION, LengthClass.LEN_1,
        Response.GET_NAME_VERSION, LengthClass.LEN_32, has_status=False,
    ),
    Command.LOAD_APP_SIZE: Exchange(
        Command.LOAD_APP_SIZE, None,
        Response.LOAD_APP_SIZE, LengthClass.LEN_4, has_status=True,
    ),
    Command.LOAD_APP_DATA: Exchange(
        Command.LOAD_APP_DATA, LengthClass.LEN_128,
        Response.LOAD_APP_DATA, LengthClass.LEN_4, has_status=True,
    ),
    Command.RUN_APP: Exchange(
        Command.RUN_APP, LengthClass.LEN_1,
        Response.RUN_APP, LengthClass.LEN_4, has_status=True,
    ),
    Command.GET_APP_DIGEST: Exchange(
        Command.GET_APP_DIGEST, LengthClass.LEN_1,
        Response.GET_APP_DIGEST, LengthClass.LEN_128, has_status=False,
    ),
    Command.GET_UDI: Exchange(
        Command.GET_UDI, LengthClass.LEN_1,
        Response.GET_UDI, LengthClass.LEN_32, has_status=False,
    ),
}

STATUS_RESPONSES = frozenset(
    ex.response for ex in EXCHANGES.values() if ex.has_status
)

# Payload bytes per load-app-data chunk.
APP_CHUNK_SIZE = EXCHANGES[Command.LOAD_APP_DATA].command_len.capacity


def command_length_class(command: Command, payload: bytes = b"") -> LengthClass:
    """Return the frame class a command is sent in."""
    fixed = EXCHANGES[command].command_len
    if fixed is not None:
        return fixed
    return LengthClass.smallest_fitting(len(payload))


def build_app_size_payload(size: int, uss_digest: bytes | None = None) -> bytes:
    """Build the load-app-size payload.

    Layout: app size (4 bytes little-endian), a one-byte flag telling
    whether a user supplied secret follows, then the 32-byte digest of
    that secret if present.

    Args:
        size: App binary size in bytes, 1-65536.
        uss_digest: BLAKE2s digest of the user supplied secret, or None.
    """
    if not 0 < size <= MAX_APP_SIZE:
        raise ValueError(f"App size must be 1-{MAX_APP_SIZE}, got {size}")
    payload = size.to_bytes(4, "little")
    if uss_digest is None:
        return payload + b"\x00"
    if len(uss_digest) != DIGEST_SIZE:
        raise ValueError(
            f"USS digest must be {DIGEST_SIZE} bytes, got {len(uss_digest)}"
        )
    return payload + b"\x01" + uss_digest
