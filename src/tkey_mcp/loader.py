"""App upload state machine.

Uploading an app is a fixed sequence of firmware exchanges::

    IDLE -> SIZE_DECLARED -> TRANSFERRING -> DIGEST_PENDING
         -> VERIFIED -> RUNNING -> DONE

Any error moves the session to FAILED and is re-raised unchanged. There
is no retry and no resume: a new upload always starts again from IDLE
with a fresh size declaration.

The run command is only ever sent after the digest reported by the
device matched the host digest of the exact bytes that were sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import SizeError
from .events import Observer, StepEvent, null_observer
from .protocol.channel import CommandChannel
from .protocol.commands import (
    APP_CHUNK_SIZE,
    MAX_APP_SIZE,
    Command,
    build_app_size_payload,
)
from .protocol.parser import parse_app_digest
from .utils.digest import format_digest, uss_digest, verify_digest

logger = logging.getLogger(__name__)


class LoaderState(Enum):
    IDLE = "idle"
    SIZE_DECLARED = "size_declared"
    TRANSFERRING = "transferring"
    DIGEST_PENDING = "digest_pending"
    VERIFIED = "verified"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TransferState:
    """Byte accounting for one upload."""

    size: int
    offset: int = 0


def check_app_size(size: int) -> None:
    """Reject sizes the firmware cannot load.

    An empty binary is rejected as well: there is nothing to run.
    """
    if size == 0:
        raise SizeError("App binary is empty")
    if size > MAX_APP_SIZE:
        raise SizeError(f"App binary too big: {size} bytes (max {MAX_APP_SIZE})")


class AppLoader:
    """Upload an app binary over a :class:`CommandChannel` and start it."""

    def __init__(self, channel: CommandChannel, observer: Observer | None = None) -> None:
        self._channel = channel
        self._observer = observer or null_observer
        self._state = LoaderState.IDLE
        self._transfer: TransferState | None = None

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def transfer(self) -> TransferState | None:
        """Accounting of the upload in progress, None outside a session."""
        return self._transfer

    def _emit(self, step: str, **detail) -> None:
        self._observer(StepEvent(step, detail))

    def _enter(self, state: LoaderState) -> None:
        self._state = state
        self._emit("state", state=state.value)

    def load_app(self, binary: bytes, secret: bytes | None = None) -> bytes:
        """Upload ``binary``, verify it and run it.

        Args:
            binary: The raw app binary, 1-65536 bytes.
            secret: Optional user supplied secret. Its digest is sent
                with the size declaration.

        Returns:
            The verified app digest.

        Raises:
            SizeError: If the binary is empty or too big (nothing is sent),
                or if transfer accounting overran the declared size.
            TransportError, FrameError, ProtocolError, VerificationError:
                From the step that failed.
        """
        binary = bytes(binary)
        self._state = LoaderState.IDLE
        self._transfer = None

        try:
            check_app_size(len(binary))
            self._declare_size(len(binary), secret)
            self._send_data(binary)
            device_digest = self._fetch_digest()
            digest = self._verify(binary, device_digest)
            self._run()
        except Exception as e:
            self._enter(LoaderState.FAILED)
            self._emit("failed", error=type(e).__name__, message=str(e))
            raise
        finally:
            self._transfer = None

        self._enter(LoaderState.DONE)
        return digest

    def load_app_from_file(self, path: str | Path, secret: bytes | None = None) -> bytes:
        """Read an app binary from ``path`` and :meth:`load_app` it."""
        binary = Path(path).read_bytes()
        return self.load_app(binary, secret)

    def _declare_size(self, size: int, secret: bytes | None) -> None:
        self._transfer = TransferState(size=size)
        digest = uss_digest(secret) if secret is not None else None
        payload = build_app_size_payload(size, digest)
        self._channel.request(Command.LOAD_APP_SIZE, payload)
        self._enter(LoaderState.SIZE_DECLARED)
        self._emit("size_declared", size=size, uss=digest is not None)

    def _send_data(self, binary: bytes) -> None:
        transfer = self._transfer
        self._enter(LoaderState.TRANSFERRING)

        while transfer.offset < transfer.size:
            chunk = binary[transfer.offset : transfer.offset + APP_CHUNK_SIZE]
            self._channel.request(Command.LOAD_APP_DATA, chunk)
            self._emit("chunk_sent", offset=transfer.offset, length=len(chunk))
            transfer.offset += len(chunk)

        if transfer.offset != transfer.size:
            raise SizeError(
                f"Transmitted {transfer.offset} bytes, declared {transfer.size}"
            )

    def _fetch_digest(self) -> bytes:
        self._enter(LoaderState.DIGEST_PENDING)
        payload = self._channel.request(Command.GET_APP_DIGEST)
        device_digest = parse_app_digest(payload)
        self._emit("digest_received", digest=format_digest(device_digest))
        return device_digest

    def _verify(self, binary: bytes, device_digest: bytes) -> bytes:
        host_digest = verify_digest(binary, device_digest)
        self._enter(LoaderState.VERIFIED)
        self._emit(
            "digest_verified",
            digest=format_digest(host_digest),
            device=format_digest(device_digest),
        )
        return host_digest

    def _run(self) -> None:
        self._enter(LoaderState.RUNNING)
        self._channel.request(Command.RUN_APP)
        self._emit("app_started")
        logger.info("App started")
