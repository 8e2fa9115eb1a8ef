"""Frame builder and parser for the key's serial framing protocol.

Frame layout::

    +--------+----------+----------------------------------------+
    | Header |   Code   |          Payload (zero padded)         |
    | 1 byte |  1 byte  |   body size - 1 bytes                  |
    +--------+----------+----------------------------------------+

Header byte::

    bit  7     reserved, must be zero
    bits 6-5   exchange id
    bits 4-3   endpoint
    bit  2     response not OK (set by the device only)
    bits 1-0   length class

The body (code byte + payload) is always exactly 1, 4, 32 or 128 bytes,
as given by the length class. The receiver learns how many body bytes
to read from the header alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from ..errors import FrameError

# Only one logical exchange is ever open at a time.
EXCHANGE_ID = 2

_RESERVED_BIT = 0x80
_NOT_OK_BIT = 0x04


class Endpoint(IntEnum):
    """Destination of a frame."""

    HARDWARE = 1
    FIRMWARE = 2
    APP = 3


class LengthClass(IntEnum):
    """Enumerated body sizes. The value is what goes on the wire."""

    LEN_1 = 0
    LEN_4 = 1
    LEN_32 = 2
    LEN_128 = 3

    @property
    def body_size(self) -> int:
        return _BODY_SIZES[self]

    @property
    def capacity(self) -> int:
        """Payload bytes available after the code byte."""
        return _BODY_SIZES[self] - 1

    @classmethod
    def smallest_fitting(cls, payload_len: int) -> LengthClass:
        """Return the smallest class that holds ``payload_len`` payload bytes."""
        for length_class in cls:
            if payload_len <= length_class.capacity:
                return length_class
        raise ValueError(
            f"Payload of {payload_len} bytes does not fit in any frame "
            f"(max {LengthClass.LEN_128.capacity})"
        )


_BODY_SIZES = {
    LengthClass.LEN_1: 1,
    LengthClass.LEN_4: 4,
    LengthClass.LEN_32: 32,
    LengthClass.LEN_128: 128,
}

MAX_FRAME_SIZE = 1 + LengthClass.LEN_128.body_size


@dataclass(frozen=True)
class FrameHeader:
    """A parsed header byte."""

    exchange_id: int
    endpoint: Endpoint
    length_class: LengthClass
    not_ok: bool = False

    def __repr__(self) -> str:
        return (
            f"FrameHeader(id={self.exchange_id}, endpoint={self.endpoint.name}, "
            f"len={self.length_class.body_size}, not_ok={self.not_ok})"
        )


def _check_length_class(length_class) -> LengthClass:
    if not isinstance(length_class, LengthClass):
        raise ValueError(f"Invalid length class: {length_class!r}")
    return length_class


def encode_header(exchange_id: int, endpoint: Endpoint, length_class: LengthClass) -> int:
    """Pack the header byte for an outbound frame."""
    length_class = _check_length_class(length_class)
    if not 0 <= exchange_id <= 3:
        raise ValueError(f"Exchange id must be 0-3, got {exchange_id}")
    return (exchange_id << 5) | (int(Endpoint(endpoint)) << 3) | length_class


def parse_header(value: int) -> FrameHeader:
    """Unpack a header byte.

    Raises:
        FrameError: If the reserved bit is set or the endpoint is unknown.
    """
    if value & _RESERVED_BIT:
        raise FrameError(f"Reserved bit set in frame header 0x{value:02X}")
    try:
        endpoint = Endpoint((value & 0x18) >> 3)
    except ValueError:
        raise FrameError(f"Unknown endpoint in frame header 0x{value:02X}") from None
    return FrameHeader(
        exchange_id=(value & 0x60) >> 5,
        endpoint=endpoint,
        length_class=LengthClass(value & 0x03),
        not_ok=bool(value & _NOT_OK_BIT),
    )


def encode(exchange_id: int, endpoint: Endpoint, length_class: LengthClass) -> bytearray:
    """Allocate a zeroed frame buffer with its header byte set.

    The caller fills in the code byte at index 1 and the payload after it.

    Raises:
        ValueError: If ``length_class`` is not a :class:`LengthClass`.
    """
    length_class = _check_length_class(length_class)
    buf = bytearray(1 + length_class.body_size)
    buf[0] = encode_header(exchange_id, endpoint, length_class)
    return buf


def decode(
    data: bytes,
    expected_endpoint: Endpoint,
    expected_length_class: LengthClass,
) -> tuple[FrameHeader, bytes]:
    """Split a raw frame into its header and body.

    Raises:
        FrameError: If the endpoint or length class differs from what the
            caller expects, or the buffer does not hold exactly one frame
            of the declared class.
    """
    if not data:
        raise FrameError("Empty frame")

    header = parse_header(data[0])
    if header.endpoint != expected_endpoint:
        raise FrameError(
            f"Expected frame for endpoint {Endpoint(expected_endpoint).name}, "
            f"got {header.endpoint.name}"
        )
    if header.length_class != expected_length_class:
        raise FrameError(
            f"Expected body of {LengthClass(expected_length_class).body_size} bytes, "
            f"header declares {header.length_class.body_size}"
        )

    body = bytes(data[1:])
    if len(body) != header.length_class.body_size:
        raise FrameError(
            f"Frame body is {len(body)} bytes, header declares "
            f"{header.length_class.body_size}"
        )
    return header, body
