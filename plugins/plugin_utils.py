# plugins/plugin_utils.py
import time
import socket
import logging
from typing import Tuple, Optional

def check_tcp_port(host: str, port: int, timeout: float = 2.0, logger_instance: Optional[logging.Logger] = None) -> Tuple[bool, float, Optional[str]]:
    """
    Probes a TCP-to-serial bridge by opening and closing one connection.

    Run before the real channel is opened, so an unreachable bridge shows up
    as a network problem instead of an inverter that never answers.

    Args:
        host: Bridge hostname or IP address.
        port: Bridge TCP port.
        timeout: Connect timeout in seconds.
        logger_instance: Logger for debug output; defaults to this module's logger.

    Returns:
        (reachable, latency in ms or -1.0, error text or None)
    """
    log = logger_instance or logging.getLogger(__name__)
    started = time.monotonic()
    try:
        with socket.create_connection((host, port), timeout=timeout):
            latency_ms = (time.monotonic() - started) * 1000
    except socket.timeout:
        log.debug(f"Bridge {host}:{port} did not accept a connection within {timeout}s")
        return False, -1.0, "Timeout"
    except OSError as e:
        log.debug(f"Bridge {host}:{port} unreachable: {e}")
        return False, -1.0, str(e)
    log.debug(f"Bridge {host}:{port} reachable ({latency_ms:.1f} ms)")
    return True, latency_ms, None
