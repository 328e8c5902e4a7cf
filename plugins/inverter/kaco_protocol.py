# plugins/inverter/kaco_protocol.py
"""
KACO ASCII protocol: request encoding, reply decoding and the read loop.

The protocol is half-duplex and checksum-free from our point of view:

    request:  '#' + address (2 digits) + command char + '\\r'      e.g. b"#010\\r"
    reply:    '\\n' '*' + address/command echo (3 chars) + ' ' + tokens + '\\r'

    b"\\n*010   4 350.0  1.18   414 229.2  1.74   398  31   1139 x\\r"

Payload tokens are whitespace separated. Some replies end with a single
status letter which is not part of the payload.

The number of payload tokens of each reply is fixed per command and kept in
KACO_REPLY_FORMATS; a reply with any other count is invalid.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

from plugins.field_calculator import parse_decimal
from plugins.serial_channel import SerialChannel

logger = logging.getLogger(__name__)

REQUEST_MARKER = "#"
REPLY_MARKER = "*"
TERMINATOR = 0x0D  # '\r'
LINE_FEED = 0x0A  # '\n'
MAX_REPLY_LENGTH = 256

COMMAND_IDENTIFICATION = "9"
COMMAND_MEASUREMENT = "0"


@dataclass(frozen=True)
class ReplyFormat:
    name: str
    arity: int
    numeric: bool


KACO_REPLY_FORMATS: Dict[str, ReplyFormat] = {
    # Model name, e.g. "SG3502"
    COMMAND_IDENTIFICATION: ReplyFormat("identification", 1, numeric=False),
    # Status, DC V, DC A, DC W, AC V, AC A, AC W, temperature, daily Wh
    COMMAND_MEASUREMENT: ReplyFormat("measurement", 9, numeric=True),
}


@dataclass(frozen=True)
class KacoFrame:
    """One request (address + command) or one decoded reply."""
    address: int
    command: str
    data: Tuple[str, ...] = ()
    is_valid: bool = False
    raw: str = ""

    def __str__(self) -> str:
        return f"KacoFrame(address={self.address}, command={self.command!r}, valid={self.is_valid}, data={list(self.data)})"


def encode_request(address: int, command: str) -> bytes:
    """Encode a request line; '#' + address padded to two digits + command + CR."""
    return f"{REQUEST_MARKER}{address:02d}{command}\r".encode("ascii")


def _strip_control(line: str) -> str:
    return line.strip(" \t\r\n\x00")


def decode_response(line: str, request: KacoFrame, reply_formats: Mapping[str, ReplyFormat] = KACO_REPLY_FORMATS) -> KacoFrame:
    """
    Decode a reply line for the given request. Never raises.

    Returns:
        A KacoFrame whose ``is_valid`` is True only if the marker, echo field
        and payload token count (and numeric content, where required) match
        the reply format of the requested command. Invalid frames still carry
        the best-effort token split.
    """
    text = _strip_control(line)

    def invalid(tokens: Sequence[str] = ()) -> KacoFrame:
        return KacoFrame(request.address, request.command, tuple(tokens), False, text)

    if not text.startswith(REPLY_MARKER):
        return invalid(text.split())

    tokens = text[len(REPLY_MARKER):].split()
    if not tokens or len(tokens[0]) != 3:
        return invalid(tokens)
    payload = tokens[1:]

    reply_format = reply_formats.get(request.command)
    if reply_format is None:
        # Unknown command: accept any non-empty payload as-is
        return KacoFrame(request.address, request.command, tuple(payload), bool(payload), text)

    if len(payload) == reply_format.arity + 1:
        # trailing status letter
        payload = payload[:-1]
    if len(payload) != reply_format.arity:
        return invalid(payload)
    # One garbled token invalidates the whole reply; the cached reply then stands in for all fields
    if reply_format.numeric and any(parse_decimal(token) is None for token in payload):
        return invalid(payload)
    return KacoFrame(request.address, request.command, tuple(payload), True, text)


class KacoProtocol:
    """
    Runs one request/response exchange at a time over a SerialChannel.

    Not thread safe; the channel is an exclusive resource of the caller for
    the duration of an exchange.
    """

    def __init__(self, reply_formats: Mapping[str, ReplyFormat] = KACO_REPLY_FORMATS, max_reply_length: int = MAX_REPLY_LENGTH):
        self.reply_formats = reply_formats
        self.max_reply_length = max_reply_length
        self._pending_request: Optional[KacoFrame] = None

    def send_data(self, channel: SerialChannel, frame: KacoFrame) -> None:
        """Write the encoded request. Channel errors propagate unchanged."""
        request = encode_request(frame.address, frame.command)
        self._pending_request = frame
        logger.debug(f"KACO TX: {request!r}")
        channel.write_bytes(request)

    def receive_data(self, channel: SerialChannel, request: Optional[KacoFrame] = None) -> KacoFrame:
        """
        Read exactly one reply line and decode it.

        Leading CR/LF bytes are skipped so the bare newline in front of every
        reply is never mistaken for the payload. Reading stops at the first CR
        after payload bytes. If the channel reports end of stream first, or
        max_reply_length bytes (skipped ones included) pass without a complete
        line, the partial line is returned as an invalid frame.
        """
        request = request or self._pending_request
        if request is None:
            raise ValueError("receive_data called without a request frame")
        buffer = bytearray()
        terminated = False
        for _ in range(self.max_reply_length):
            value = channel.read_byte()
            if value is None:
                break
            if value in (TERMINATOR, LINE_FEED) and not buffer:
                continue
            if value == TERMINATOR:
                terminated = True
                break
            buffer.append(value)

        line = buffer.decode("ascii", errors="replace")
        logger.debug(f"KACO RX: {line!r} (terminated={terminated})")
        frame = decode_response(line, request, self.reply_formats)
        if not terminated and frame.is_valid:
            frame = KacoFrame(frame.address, frame.command, frame.data, False, frame.raw)
        return frame

    def exchange(self, channel: SerialChannel, frame: KacoFrame) -> KacoFrame:
        """Send a request and return the decoded reply."""
        self.send_data(channel, frame)
        return self.receive_data(channel, frame)
