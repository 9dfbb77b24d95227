"""Custom service endpoint detector.

Probes a user-supplied table of port -> label pairs. Useful for in-house
IoT services that listen on a fixed port.
"""
import threading
from typing import Optional

from config import get_logger
from discovery.detectors.base import DeviceTypeDetector, is_cancelled, is_port_open

logger = get_logger(__name__)


class ServiceEndpointDetector(DeviceTypeDetector):
    priority = 60
    name = "service-endpoint"

    def __init__(self, port_options):
        self.port_options = port_options

    def detect(self, address: str,
               cancel_event: Optional[threading.Event] = None) -> Optional[str]:
        for port, label in self.port_options.service_endpoints:
            if is_cancelled(cancel_event):
                return None
            if is_port_open(address, port, self.port_options.port_connection_timeout_ms):
                logger.info(f"Service endpoint detected on {address}:{port} - {label}")
                return label
        return None
