"""BLAKE2s-256 digests as computed by the key firmware."""

from __future__ import annotations

import hashlib
import hmac

from ..errors import VerificationError

DIGEST_SIZE = 32


def app_digest(data: bytes) -> bytes:
    """Compute the 32-byte BLAKE2s digest of an app binary."""
    return hashlib.blake2s(data, digest_size=DIGEST_SIZE).digest()


def uss_digest(secret: bytes) -> bytes:
    """Hash a user supplied secret into the digest sent to the firmware.

    The secret is hashed unmodified; trailing newlines are not stripped.
    """
    return hashlib.blake2s(secret, digest_size=DIGEST_SIZE).digest()


def digests_match(a: bytes, b: bytes) -> bool:
    """Byte-exact comparison of two digests."""
    if len(a) != DIGEST_SIZE or len(b) != DIGEST_SIZE:
        return False
    return hmac.compare_digest(a, b)


def verify_digest(data: bytes, device_digest: bytes) -> bytes:
    """Check that ``device_digest`` is the digest of ``data``.

    Returns:
        The host-side digest.

    Raises:
        VerificationError: If the digests differ.
    """
    host = app_digest(data)
    if not digests_match(host, device_digest):
        raise VerificationError(
            f"Different digests: host {host.hex()}, device {bytes(device_digest).hex()}",
            host_digest=host,
            device_digest=bytes(device_digest),
        )
    return host


def format_digest(md: bytes) -> str:
    """Render a digest as four space separated 8-byte hex groups."""
    return " ".join(md[i : i + 8].hex() for i in range(0, len(md), 8))
