"""Runtime settings, read from the environment (and a ``.env`` file)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .transport.serial_connection import SERIAL_SPEED


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Server settings."""

    # Serial port; empty means auto-detect by USB vendor/product id
    port: str = ""
    speed: int = SERIAL_SPEED
    log_level: str = "INFO"
    # Log every protocol step (frames, chunks, digests)
    verbose: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        load_dotenv()
        return cls(
            port=os.environ.get("TKEY_PORT", ""),
            speed=int(os.environ.get("TKEY_SPEED", SERIAL_SPEED)),
            log_level=os.environ.get("TKEY_LOG_LEVEL", "INFO").upper(),
            verbose=_env_bool("TKEY_VERBOSE"),
        )
