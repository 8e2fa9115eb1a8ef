"""Synchronous request/response channel to the key firmware.

One command frame goes out, exactly one response frame comes back. The
channel never reads ahead and never buffers frames; the strict
alternation is what keeps frame boundaries in step on the byte stream.
"""

from __future__ import annotations

import logging

from ..errors import ProtocolError
from ..events import Observer, StepEvent, null_observer
from .commands import EXCHANGES, STATUS_OK, STATUS_RESPONSES, Command, Response, command_length_class
from .framing import EXCHANGE_ID, Endpoint, LengthClass, decode, encode, parse_header

logger = logging.getLogger(__name__)


def _code_name(enum_cls, value: int) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return f"0x{value:02X}"


class CommandChannel:
    """Send firmware commands and read their paired responses.

    Args:
        transport: Object with ``write(bytes)`` and ``read_exactly(n)``,
            normally a :class:`~tkey_mcp.transport.SerialConnection`.
        observer: Receives ``frame_sent`` / ``frame_received`` events.
        endpoint: Destination of outbound frames and expected source of
            inbound ones.
    """

    def __init__(
        self,
        transport,
        observer: Observer | None = None,
        endpoint: Endpoint = Endpoint.FIRMWARE,
    ) -> None:
        self._transport = transport
        self._observer = observer or null_observer
        self._endpoint = endpoint

    @property
    def transport(self):
        return self._transport

    def send(self, command: int, length_class: LengthClass, payload: bytes = b"") -> None:
        """Encode and write one command frame.

        Payloads shorter than the class capacity are zero padded.

        Raises:
            ValueError: If the payload does not fit in ``length_class``.
            TransportError: If the write fails.
        """
        frame = encode(EXCHANGE_ID, self._endpoint, length_class)
        if len(payload) > length_class.capacity:
            raise ValueError(
                f"Payload of {len(payload)} bytes exceeds the "
                f"{length_class.capacity}-byte capacity of a "
                f"{length_class.body_size}-byte frame"
            )
        frame[1] = command
        frame[2 : 2 + len(payload)] = payload

        logger.debug("tx %s", frame.hex())
        self._transport.write(bytes(frame))
        self._observer(StepEvent("frame_sent", {
            "command": _code_name(Command, command),
            "length": length_class.body_size,
        }))

    def receive(self, expected_response: int, length_class: LengthClass) -> bytes:
        """Read one response frame and check it answers the last command.

        Returns:
            The body bytes after the response code, and after the status
            byte for responses that carry one.

        Raises:
            TransportError: If the read fails or times out.
            FrameError: If the header does not match the expected frame.
            ProtocolError: If the response code is wrong, the device does
                not know the command, or it rejected the command.
        """
        step = _code_name(Response, expected_response)
        raw = self._transport.read_exactly(1)
        header = parse_header(raw[0])
        # Read the body the header declares so a class mismatch is
        # reported without leaving stray bytes on the line.
        raw += self._transport.read_exactly(header.length_class.body_size)
        logger.debug("rx %s", raw.hex())

        # Sent in whatever class the firmware picks, so check before decode.
        if raw[1] == Response.UNKNOWN_COMMAND:
            raise ProtocolError(
                f"{step}: device does not know the command",
                step=step, expected=expected_response, actual=raw[1],
            )

        header, body = decode(raw, self._endpoint, length_class)
        self._observer(StepEvent("frame_received", {
            "response": _code_name(Response, body[0]),
            "length": length_class.body_size,
        }))

        if header.not_ok:
            raise ProtocolError(
                f"{step}: device flagged the response as not OK",
                step=step, expected=expected_response, actual=body[0],
            )
        if body[0] != expected_response:
            raise ProtocolError(
                f"Expected {step}, got {_code_name(Response, body[0])}",
                step=step, expected=expected_response, actual=body[0],
            )
        if expected_response in STATUS_RESPONSES:
            if body[1] != STATUS_OK:
                raise ProtocolError(
                    f"{step}: device rejected the operation (status 0x{body[1]:02X})",
                    step=step, expected=STATUS_OK, actual=body[1],
                )
            return body[2:]
        return body[1:]

    def request(
        self,
        command: Command,
        payload: bytes = b"",
        length_class: LengthClass | None = None,
    ) -> bytes:
        """Send ``command`` and return the payload of its paired response."""
        exchange = EXCHANGES[command]
        if length_class is None:
            length_class = command_length_class(command, payload)
        self.send(command, length_class, payload)
        return self.receive(exchange.response, exchange.response_len)
