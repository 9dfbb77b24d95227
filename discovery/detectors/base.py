"""Detector interface and shared TCP probing helpers.

Every detector exposes a static priority and a ``detect`` call that returns
a classification label or None. Detectors never raise out of ``detect``:
an unanswered port is the normal case on a LAN sweep, so failures are
logged at DEBUG and turned into a miss.
"""
import socket
import threading
from abc import ABC, abstractmethod
from typing import Optional

from config import get_logger

logger = get_logger(__name__)


class DeviceTypeDetector(ABC):
    """A pluggable device classification strategy.

    Attributes:
        priority: Higher runs first in the chain.
        name: Short identifier used in logs and in the enabled-detector list.
    """

    priority: int = 0
    name: str = "detector"

    @abstractmethod
    def detect(self, address: str,
               cancel_event: Optional[threading.Event] = None) -> Optional[str]:
        """Classify one address.

        Args:
            address: Dotted-quad IPv4 address.
            cancel_event: Set when the sweep is being cancelled.

        Returns:
            A label such as "Ubuntu Linux (SSH)", or None on no match.
        """

    def close(self) -> None:
        """Release sockets and threads. Active detectors hold none."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(priority={self.priority})"


def is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def tcp_connect(address: str, port: int, timeout_ms: int) -> Optional[socket.socket]:
    """Open a TCP connection or return None when the port does not answer in time."""
    try:
        sock = socket.create_connection((address, port), timeout=timeout_ms / 1000)
    except OSError as e:
        logger.debug(f"Connect {address}:{port} failed: {e}")
        return None
    sock.settimeout(timeout_ms / 1000)
    return sock


def is_port_open(address: str, port: int, timeout_ms: int) -> bool:
    sock = tcp_connect(address, port, timeout_ms)
    if sock is None:
        return False
    sock.close()
    return True


def exchange(address: str, port: int, timeout_ms: int,
             payload: Optional[bytes] = None, max_bytes: int = 1024,
             read_timeout_ms: Optional[int] = None) -> Optional[str]:
    """Connect, optionally send a payload, and read one bounded response.

    The connect is bounded by timeout_ms, the read by read_timeout_ms
    (defaults to timeout_ms).

    Returns:
        The decoded response (may be empty), or None if the port is closed
        or the read timed out.
    """
    sock = tcp_connect(address, port, timeout_ms)
    if sock is None:
        return None

    if read_timeout_ms:
        sock.settimeout(read_timeout_ms / 1000)

    with sock:
        try:
            if payload:
                sock.sendall(payload)
            data = sock.recv(max_bytes)
        except OSError as e:
            logger.debug(f"Read {address}:{port} failed: {e}")
            return None

    return data.decode('ascii', errors='replace')


def match_first(text: str, table) -> Optional[str]:
    """Return the label of the first (substring, label) pair found in text.

    Matching is case-insensitive. Tables list specific substrings before
    generic ones.
    """
    lowered = text.lower()
    for needle, label in table:
        if needle in lowered:
            return label
    return None
