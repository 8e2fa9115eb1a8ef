"""Load and start apps on a Tillitis key over its serial framing protocol."""

__version__ = "0.1.0"

from .device import TillitisKey
from .loader import AppLoader, LoaderState
from .errors import (
    TKeyError,
    TransportError,
    FrameError,
    ProtocolError,
    SizeError,
    VerificationError,
)
