"""
In-memory SerialChannel replaying the reference KACO exchange of a Schueco SGI 3502.

Requests it does not know raise OSError, like a device that never answers
would surface through a real transport. Opening an open channel or closing a
closed one raises, so tests catch leaked or doubled connections.
"""

import logging
from typing import Dict, List, Optional

from plugins.serial_channel import SerialChannel

logger = logging.getLogger(__name__)

IDENTIFICATION_REQUEST = b"#019\r"
MEASUREMENT_REQUEST = b"#010\r"
IDENTIFICATION_REPLY = "\n*019 SG3502 h\r"
MEASUREMENT_REPLY = "\n*010   4 350.0  1.18   414 229.2  1.74   398  31   1139 x\r"

REFERENCE_REPLIES: Dict[bytes, str] = {
    IDENTIFICATION_REQUEST: IDENTIFICATION_REPLY,
    MEASUREMENT_REQUEST: MEASUREMENT_REPLY,
}


class FakeKacoChannel(SerialChannel):

    def __init__(self, replies: Optional[Dict[bytes, str]] = None):
        self.replies: Dict[bytes, str] = dict(REFERENCE_REPLIES if replies is None else replies)
        self.written: List[bytes] = []
        self.connect_count = 0
        self.disconnect_count = 0
        self._open = False
        self._pending = bytearray()

    @property
    def is_open(self) -> bool:
        return self._open

    def connect(self) -> None:
        logger.debug("openPort")
        if self._open:
            raise ConnectionError("Port already in use")
        self._open = True
        self.connect_count += 1

    def disconnect(self) -> None:
        logger.debug("closePort")
        if not self._open:
            raise RuntimeError("closed port without open")
        self._open = False
        self.disconnect_count += 1

    def feed(self, data: bytes) -> None:
        """Queue raw bytes for read_byte(), independent of any request."""
        self._pending.extend(data)

    def read_byte(self) -> Optional[int]:
        if not self._open:
            raise OSError("read on closed port")
        if not self._pending:
            return None
        return self._pending.pop(0)

    def write_bytes(self, data: bytes) -> int:
        if not self._open:
            raise OSError("write on closed port")
        self.written.append(bytes(data))
        reply = self.replies.get(bytes(data))
        if reply is None:
            logger.error(f"unknown command: {data!r}")
            raise OSError("unknown command")
        self._pending = bytearray(reply.encode("ascii"))
        return len(data)
