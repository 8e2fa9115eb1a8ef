"""Exception hierarchy for talking to the key.

Every error raised while a session is in progress ends that session.
Nothing here is retried; the caller decides whether to start over.
"""

from __future__ import annotations


class TKeyError(Exception):
    """Base class for all errors raised by this package."""


class TransportError(TKeyError, ConnectionError):
    """Opening, writing to or reading from the serial port failed.

    A read that times out or returns fewer bytes than requested is a
    transport error too.
    """


class FrameError(TKeyError):
    """A received frame header did not match what the exchange expects.

    The stream has no delimiter other than the fixed frame sizes, so a
    mismatch means host and device are no longer in step.
    """


class ProtocolError(TKeyError):
    """The device answered with the wrong response code or rejected a command."""

    def __init__(
        self,
        message: str,
        step: str = "",
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.expected = expected
        self.actual = actual


class SizeError(TKeyError):
    """The app binary size is out of range or transfer accounting overran it."""


class VerificationError(TKeyError):
    """The digest reported by the device differs from the host digest."""

    def __init__(self, message: str, host_digest: bytes, device_digest: bytes) -> None:
        super().__init__(message)
        self.host_digest = host_digest
        self.device_digest = device_digest
