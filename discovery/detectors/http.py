"""HTTP header sniffing detector."""
import threading
from typing import Optional

from config import NETWORK, get_logger
from discovery.detectors.base import DeviceTypeDetector, exchange, is_cancelled, match_first

logger = get_logger(__name__)

# Checked against "Server:" lines only. IIS versions before the generic match.
SERVER_HEADER_LABELS = (
    ("iis/10.0", "Windows Server 2016/2019/2022 (HTTP)"),
    ("iis/8.5", "Windows Server 2012 R2 (HTTP)"),
    ("iis/8.0", "Windows Server 2012 (HTTP)"),
    ("microsoft-iis", "Windows Server (HTTP)"),
    ("kestrel", "Windows/Linux (.NET) (HTTP)"),
    ("apache", "Linux Server (HTTP)"),
    ("nginx", "Linux Server (HTTP)"),
    ("lighttpd", "Linux Server (HTTP)"),
)

# Checked against every response line
ANY_LINE_LABELS = (
    ("asp.net", "Windows Server (.NET) (HTTP)"),
    ("microsoft-httpapi", "Windows Server (HTTP)"),
)

PORT_HINTS = {
    5000: "Unknown (.NET App) (HTTP)",
    8000: "Unknown (Web App) (HTTP)",
    8080: "Unknown (Web App) (HTTP)",
    8443: "Unknown (Secure Web) (HTTP)",
}
DEFAULT_HTTP_LABEL = "Unknown (HTTP)"


def parse_http_response(response: str, port: int) -> Optional[str]:
    """Classify a raw HTTP response.

    Lines are scanned in order. A "Server:" line is matched against the
    server table, any line against the framework table. A bare HTTP/1.x
    response with no match falls back to a hint based on the port.
    """
    for line in response.split('\n'):
        stripped = line.strip()
        if stripped.lower().startswith('server:'):
            label = match_first(stripped, SERVER_HEADER_LABELS)
            if label:
                return label
        label = match_first(stripped, ANY_LINE_LABELS)
        if label:
            return label

    if 'HTTP/1.' in response:
        return PORT_HINTS.get(port, DEFAULT_HTTP_LABEL)

    return None


class HttpDetector(DeviceTypeDetector):
    """Sends HEAD / to the IoT ports, then the standard ports."""

    priority = 50
    name = "http"

    def __init__(self, port_options, read_timeout_ms: Optional[int] = None):
        self.port_options = port_options
        self.read_timeout_ms = read_timeout_ms

    def detect(self, address: str,
               cancel_event: Optional[threading.Event] = None) -> Optional[str]:
        ports = list(self.port_options.custom_iot_ports) + list(self.port_options.standard_http_ports)
        for port in ports:
            if is_cancelled(cancel_event):
                return None
            label = self._probe_port(address, port)
            if label:
                logger.info(f"Device type detected via HTTP on {address}:{port}: {label}")
                return label
        return None

    def _probe_port(self, address: str, port: int) -> Optional[str]:
        request = (
            f"HEAD / HTTP/1.1\r\nHost: {address}\r\nConnection: close\r\n\r\n"
        ).encode('ascii')
        response = exchange(
            address, port, self.port_options.port_connection_timeout_ms,
            payload=request, max_bytes=NETWORK.HTTP_READ_BYTES,
            read_timeout_ms=self.read_timeout_ms
        )
        if not response:
            return None
        return parse_http_response(response, port)
