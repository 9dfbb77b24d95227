"""Windows service port detector."""
import threading
from typing import Optional

from config import get_logger
from discovery.detectors.base import DeviceTypeDetector, is_cancelled, is_port_open

logger = get_logger(__name__)

# RDP and WinRM are server roles; SMB/NetBIOS/RPC answer on clients too
SERVER_PORTS = frozenset({3389, 5985, 5986})


def windows_label(port: int, service: str) -> str:
    role = "Windows Server" if port in SERVER_PORTS else "Windows Client"
    return f"{role} ({service})"


class WindowsServicesDetector(DeviceTypeDetector):
    """First open port in the configured table decides the label."""

    priority = 30
    name = "windows"

    def __init__(self, port_options):
        self.port_options = port_options

    def detect(self, address: str,
               cancel_event: Optional[threading.Event] = None) -> Optional[str]:
        for port, service in self.port_options.windows_service_ports:
            if is_cancelled(cancel_event):
                return None
            if is_port_open(address, port, self.port_options.port_connection_timeout_ms):
                label = windows_label(port, service)
                logger.info(f"Device type detected via Windows services on {address}: {label}")
                return label
        return None
