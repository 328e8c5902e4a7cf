# plugins/serial_channel.py
"""
Byte-oriented transports for half-duplex serial protocols.

A SerialChannel is the only thing a protocol driver needs from the wire:
connect/disconnect, read one byte, write a block of bytes. Two adapters are
provided, a direct pyserial port and a TCP-to-serial bridge socket.

Transport failures are raised as OSError (pyserial's SerialException and
socket errors both derive from it). End of stream and read timeouts are
reported by read_byte() returning None, never by a fake terminator byte.
"""

import logging
import socket
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

import serial

from plugins.plugin_interface import parse_config_float, parse_config_int, parse_config_str
from plugins.plugin_utils import check_tcp_port

logger = logging.getLogger(__name__)


class ConnectionType(str, Enum):
    """Enumeration for supported connection types."""
    TCP = "tcp"
    SERIAL = "serial"


class SerialChannel(ABC):
    """
    Capability interface for a single exclusive byte stream.

    Usable as a context manager: entering connects, leaving always disconnects,
    including when the body raises.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def connect(self) -> None:
        """Open the transport. Raises OSError on failure."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the transport. Safe to call on an already closed channel."""
        pass

    @abstractmethod
    def read_byte(self) -> Optional[int]:
        """
        Read the next byte, blocking up to the channel's own timeout.

        Returns:
            The byte value 0-255, or None on end of stream / read timeout.
        """
        pass

    @abstractmethod
    def write_bytes(self, data: bytes) -> int:
        """Write all bytes in one call. Returns the number of bytes written."""
        pass

    def __enter__(self) -> "SerialChannel":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.disconnect()


class PySerialChannel(SerialChannel):
    """Direct USB/RS232/RS485 port using pyserial with 8N1 framing."""

    def __init__(self, port: str, baud_rate: int = 9600, timeout: float = 2.0):
        self.port = port
        self.baud_rate = baud_rate
        self.timeout = timeout
        self._serial: Optional[serial.Serial] = None

    @property
    def is_open(self) -> bool:
        return bool(self._serial and self._serial.is_open)

    def connect(self) -> None:
        if self.is_open:
            raise ConnectionError(f"Serial port {self.port} is already open")
        self._serial = serial.Serial(
            port=self.port,
            baudrate=self.baud_rate,
            timeout=self.timeout,
            write_timeout=self.timeout,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE
        )
        # Drop anything left over from a previous, aborted exchange
        self._serial.reset_input_buffer()
        logger.debug(f"Opened serial port {self.port} @ {self.baud_rate} baud")

    def disconnect(self) -> None:
        if self._serial is None:
            return
        try:
            if self._serial.is_open:
                self._serial.close()
                logger.debug(f"Closed serial port {self.port}")
        finally:
            self._serial = None

    def read_byte(self) -> Optional[int]:
        if not self.is_open:
            raise serial.SerialException(f"Serial port {self.port} is not open")
        chunk = self._serial.read(1)
        return chunk[0] if chunk else None

    def write_bytes(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.SerialException(f"Serial port {self.port} is not open")
        written = self._serial.write(data)
        self._serial.flush()
        return written if written is not None else len(data)


class TcpSerialChannel(SerialChannel):
    """Serial line exposed by a TCP-to-RS485 bridge in transparent mode."""

    def __init__(self, host: str, port: int, timeout: float = 2.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._socket: Optional[socket.socket] = None

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    def connect(self) -> None:
        if self.is_open:
            raise ConnectionError(f"TCP bridge {self.host}:{self.port} is already connected")
        port_open, _, err_msg = check_tcp_port(self.host, self.port, timeout=self.timeout)
        if not port_open:
            raise ConnectionError(f"TCP port {self.port} on {self.host} is not open: {err_msg}")
        sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        sock.settimeout(self.timeout)
        self._socket = sock
        logger.debug(f"Connected to TCP bridge {self.host}:{self.port}")

    def disconnect(self) -> None:
        if self._socket is None:
            return
        try:
            self._socket.close()
            logger.debug(f"Closed TCP bridge {self.host}:{self.port}")
        finally:
            self._socket = None

    def read_byte(self) -> Optional[int]:
        if self._socket is None:
            raise ConnectionError(f"TCP bridge {self.host}:{self.port} is not connected")
        try:
            chunk = self._socket.recv(1)
        except socket.timeout:
            return None
        return chunk[0] if chunk else None

    def write_bytes(self, data: bytes) -> int:
        if self._socket is None:
            raise ConnectionError(f"TCP bridge {self.host}:{self.port} is not connected")
        self._socket.sendall(data)
        return len(data)


def create_channel(config: Dict[str, Any]) -> SerialChannel:
    """
    Build the channel described by a plugin configuration section.

    Raises:
        ValueError: If the connection type is unknown or a TCP host is missing.
    """
    connection_type = ConnectionType(parse_config_str(config, "connection_type", "serial").lower())
    timeout = parse_config_float(config, "serial_timeout_seconds", 2.0)
    if connection_type == ConnectionType.SERIAL:
        return PySerialChannel(
            port=parse_config_str(config, "serial_port", "/dev/ttyUSB0"),
            baud_rate=parse_config_int(config, "baud_rate", 9600),
            timeout=timeout
        )
    tcp_host = parse_config_str(config, "tcp_host")
    if not tcp_host:
        raise ValueError("connection_type is 'tcp' but tcp_host is not configured")
    return TcpSerialChannel(tcp_host, parse_config_int(config, "tcp_port", 4001), timeout=timeout)
