"""Response payload parsing for firmware replies."""

from __future__ import annotations

from dataclasses import dataclass

from .commands import DIGEST_SIZE


@dataclass
class NameVersion:
    """Parsed get-name-version response."""

    name0: str
    name1: str
    version: int

    def __repr__(self) -> str:
        return (
            f"NameVersion(name0={self.name0!r}, name1={self.name1!r}, "
            f"version={self.version})"
        )


@dataclass
class UDI:
    """Unique Device Identifier, unpacked from two little-endian words."""

    unnamed: int
    vendor_id: int
    product_id: int
    product_revision: int
    serial: int

    def __str__(self) -> str:
        return (
            f"{self.unnamed:01X}{self.vendor_id:04X}:{self.product_id:X}:"
            f"{self.product_revision:X}:{self.serial:08X}"
        )


def _name_field(raw: bytes) -> str:
    # The firmware stores each name word byte-reversed.
    return raw[::-1].decode("ascii", errors="replace")


def parse_name_version(payload: bytes) -> NameVersion:
    """Parse a name/version payload.

    Two 4-byte ASCII name fields followed by a 4-byte little-endian
    version number.
    """
    if len(payload) < 12:
        raise ValueError(f"Name/version payload too short: {len(payload)} bytes")
    return NameVersion(
        name0=_name_field(payload[0:4]),
        name1=_name_field(payload[4:8]),
        version=int.from_bytes(payload[8:12], "little"),
    )


def parse_udi(payload: bytes) -> UDI:
    """Parse a get-UDI payload."""
    if len(payload) < 8:
        raise ValueError(f"UDI payload too short: {len(payload)} bytes")
    vpr = int.from_bytes(payload[0:4], "little")
    return UDI(
        unnamed=(vpr >> 28) & 0xF,
        vendor_id=(vpr >> 12) & 0xFFFF,
        product_id=(vpr >> 6) & 0x3F,
        product_revision=vpr & 0x3F,
        serial=int.from_bytes(payload[4:8], "little"),
    )


def parse_app_digest(payload: bytes) -> bytes:
    """Extract the 32-byte app digest from a get-app-digest payload."""
    if len(payload) < DIGEST_SIZE:
        raise ValueError(f"Digest payload too short: {len(payload)} bytes")
    return bytes(payload[:DIGEST_SIZE])
