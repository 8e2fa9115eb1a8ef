"""Tests for the firmware-mode session facade."""

from unittest.mock import MagicMock, patch

import pytest

from tkey_mcp.device import FIRST_EXCHANGE_TIMEOUT_S, TillitisKey
from tkey_mcp.errors import TransportError, VerificationError
from tkey_mcp.events import RecordingObserver
from tkey_mcp.loader import LoaderState
from tkey_mcp.protocol.commands import Command


def test_get_name_version_arms_timeout_for_first_exchange(firmware):
    tk = TillitisKey(firmware)
    nv = tk.get_name_version()
    assert (nv.name0, nv.name1, nv.version) == ("mkdf", "mta1", 5)
    assert firmware.timeouts == [FIRST_EXCHANGE_TIMEOUT_S, None]


def test_get_name_version_timeout_clears_timeout(firmware):
    """A key already running an app does not answer; the timeout is still reset."""
    firmware.silent.add(Command.GET_NAME_VERSION)
    tk = TillitisKey(firmware)
    with pytest.raises(TransportError):
        tk.get_name_version()
    assert firmware.timeouts == [FIRST_EXCHANGE_TIMEOUT_S, None]


def test_later_exchanges_have_no_timeout(firmware):
    tk = TillitisKey(firmware)
    tk.get_name_version()
    tk.load_app(b"\x13" * 200)
    assert firmware.timeouts == [FIRST_EXCHANGE_TIMEOUT_S, None]


def test_get_udi(firmware):
    observer = RecordingObserver()
    udi = TillitisKey(firmware, observer=observer).get_udi()
    assert udi.vendor_id == 0x1337
    assert udi.serial == 0xDEADBEEF
    assert observer.events[-1].step == "udi"


def test_load_app(firmware):
    tk = TillitisKey(firmware)
    tk.load_app(b"\xAB" * 300, secret=b"pass phrase")
    assert firmware.running
    assert firmware.uss_digest is not None
    assert tk.loader.state == LoaderState.DONE


def test_context_manager_closes_on_failure(firmware):
    firmware.digest_override = bytes(32)
    with pytest.raises(VerificationError):
        with TillitisKey(firmware) as tk:
            tk.load_app(b"\x01" * 10)
    assert firmware.closed
    assert not firmware.running


def test_open_uses_serial_connection():
    with patch("tkey_mcp.device.SerialConnection") as conn_cls:
        conn = MagicMock()
        conn_cls.return_value = conn
        tk = TillitisKey.open("/dev/ttyACM0", 62500)
    conn_cls.assert_called_once_with("/dev/ttyACM0", 62500)
    conn.open.assert_called_once()
    assert tk.connection is conn
    tk.close()
    conn.close.assert_called_once()
