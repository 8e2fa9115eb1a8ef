"""Protocol layer: frame codec, command table, response parsing, command channel."""

from .framing import Endpoint, LengthClass, decode, encode
from .commands import Command, Response
from .channel import CommandChannel
