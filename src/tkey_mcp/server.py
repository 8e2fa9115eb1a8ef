"""MCP server entry point for provisioning a Tillitis key.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import Settings
from .device import TillitisKey
from .errors import ProtocolError, TKeyError, VerificationError
from .events import LoggingObserver, null_observer
from .protocol.commands import MAX_APP_SIZE
from .transport.serial_connection import detect_serial_port
from .utils.digest import format_digest

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "tkey",
    instructions="MCP server for loading and starting apps on a Tillitis key",
)

# Global connection state
_settings = Settings()
_key: TillitisKey | None = None
_app_running = False
_last_load: dict[str, Any] = {}


def _get_key() -> TillitisKey:
    """Get the active key session, raising if not connected."""
    if _key is None or not _key.connection.connected:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    if _app_running:
        raise RuntimeError(
            "An app is running on the key; firmware commands are no longer "
            "available. Unplug and reconnect the key to load another app."
        )
    return _key


def _error(e: Exception, **extra: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"error": str(e), "type": type(e).__name__}
    if isinstance(e, ProtocolError) and e.step:
        result["step"] = e.step
    if isinstance(e, VerificationError):
        result["host_digest"] = e.host_digest.hex()
        result["device_digest"] = e.device_digest.hex()
    result.update(extra)
    return result


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(port: str | None = None, speed: int | None = None) -> dict[str, Any]:
    """Open the serial connection to the key and identify its firmware.

    Args:
        port: Serial device path. Auto-detected by USB id when omitted.
        speed: Serial speed in bits per second (default 62500).
    """
    global _key, _app_running
    if _key is not None and _key.connection.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "port": _key.connection.port_info.port,
        }

    try:
        port = port or _settings.port or detect_serial_port()
    except TKeyError as e:
        return _error(e)

    observer = LoggingObserver() if _settings.verbose else null_observer
    try:
        _key = TillitisKey.open(port, speed or _settings.speed, observer=observer)
    except TKeyError as e:
        return _error(e, port=port)
    _app_running = False

    try:
        name_version = _key.get_name_version()
    except TKeyError as e:
        # First error ends the session; later commands would block forever.
        try:
            _key.close()
        finally:
            _key = None
        return _error(
            e,
            connected=False,
            port=port,
            hint="The key might not be in firmware mode and have an app "
                 "running already. Unplug it and plug it in again.",
        )

    return {
        "connected": True,
        "port": port,
        "name0": name_version.name0,
        "name1": name_version.name1,
        "version": name_version.version,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial connection to the key."""
    global _key, _app_running
    if _key is None:
        return {"disconnected": True}
    try:
        _key.close()
    finally:
        _key = None
        _app_running = False
    return {"disconnected": True}


@mcp.tool()
def get_name_version() -> dict[str, Any]:
    """Retrieve the firmware name and version."""
    key = _get_key()
    try:
        nv = key.get_name_version()
    except TKeyError as e:
        return _error(e)
    return {"name0": nv.name0, "name1": nv.name1, "version": nv.version}


@mcp.tool()
def get_udi() -> dict[str, Any]:
    """Retrieve the key's Unique Device Identifier."""
    key = _get_key()
    try:
        udi = key.get_udi()
    except TKeyError as e:
        return _error(e)
    return {
        "udi": str(udi),
        "vendor_id": f"0x{udi.vendor_id:04X}",
        "product_id": udi.product_id,
        "product_revision": udi.product_revision,
        "serial": f"0x{udi.serial:08X}",
    }


# ─── APP LOADING TOOLS ───────────────────────────────────────────────

@mcp.tool()
def load_app(file_path: str, uss_file: str | None = None) -> dict[str, Any]:
    """Upload a raw app binary to the key, verify it, and start it.

    The key's digest of the uploaded bytes must match the host's BLAKE2s
    digest before the app is started.

    Args:
        file_path: Path to the raw app binary (at most 64 KiB).
        uss_file: Optional file whose full contents are hashed as the
                  User Supplied Secret.
    """
    global _app_running
    key = _get_key()

    path = Path(file_path).expanduser()
    if not path.is_file():
        return {"error": f"File not found: {path}"}

    secret = None
    if uss_file:
        uss_path = Path(uss_file).expanduser()
        if not uss_path.is_file():
            return {"error": f"USS file not found: {uss_path}"}
        secret = uss_path.read_bytes()

    try:
        digest = key.load_app_from_file(path, secret)
    except TKeyError as e:
        _last_load.clear()
        _last_load.update({"file": str(path), "ok": False, "error": str(e)})
        return _error(e, state=key.loader.state.value)

    _app_running = True
    _last_load.clear()
    _last_load.update({
        "file": str(path),
        "ok": True,
        "size": path.stat().st_size,
        "digest": digest.hex(),
    })
    return {
        "started": True,
        "file": str(path),
        "size": _last_load["size"],
        "digest": format_digest(digest),
        "uss": secret is not None,
    }


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("tkey://device/info")
def resource_device_info() -> str:
    """Port and serial settings of the current connection."""
    if _key is None or not _key.connection.connected:
        return json.dumps({"connected": False})

    info = _key.connection.port_info
    return json.dumps({
        "connected": True,
        "port": info.port,
        "speed": info.speed,
        "max_app_size": MAX_APP_SIZE,
    })


@mcp.resource("tkey://device/status")
def resource_device_status() -> str:
    """Connection state and result of the last app load."""
    connected = _key is not None and _key.connection.connected
    return json.dumps({
        "connected": connected,
        "app_running": _app_running,
        "last_load": _last_load or None,
    })


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def provision_app(file_path: str) -> str:
    """Walk through loading an app onto a freshly plugged-in key.

    Args:
        file_path: Path to the app binary to load.
    """
    return f"""Provision the key with the app at {file_path}.
Steps:
- Use the connect tool; confirm the firmware name and version
- Use get_udi to record which physical key is being provisioned
- Use load_app with file_path={file_path!r}; pass uss_file only if the
  user wants app secrets bound to a User Supplied Secret
- Report the digest returned by load_app

If any step reports an error, do not retry on the same connection:
ask the user to unplug and replug the key, then start again."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    global _settings
    _settings = Settings.from_env()
    logging.basicConfig(level=getattr(logging, _settings.log_level, logging.INFO))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
