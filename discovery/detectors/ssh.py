"""SSH banner sniffing detector."""
import threading
from typing import Optional

from config import NETWORK, get_logger
from discovery.detectors.base import DeviceTypeDetector, exchange, match_first

logger = get_logger(__name__)

# Distribution markers before the generic OpenSSH match
BANNER_LABELS = (
    ("ubuntu", "Ubuntu Linux (SSH)"),
    ("debian", "Debian Linux (SSH)"),
    ("raspbian", "Raspberry Pi (SSH)"),
    ("freebsd", "FreeBSD (SSH)"),
    ("dropbear", "Embedded Linux (SSH)"),
    ("openssh", "Linux/Unix (SSH)"),
    ("ssh", "Unknown (SSH)"),
)


def parse_ssh_banner(banner: str) -> Optional[str]:
    """Map an identification string like "SSH-2.0-OpenSSH_8.9p1 Ubuntu-3" to a label."""
    return match_first(banner, BANNER_LABELS)


class SshDetector(DeviceTypeDetector):
    priority = 40
    name = "ssh"

    def __init__(self, port_options, read_timeout_ms: Optional[int] = None):
        self.port_options = port_options
        self.read_timeout_ms = read_timeout_ms

    def detect(self, address: str,
               cancel_event: Optional[threading.Event] = None) -> Optional[str]:
        banner = exchange(
            address, self.port_options.ssh_port,
            self.port_options.port_connection_timeout_ms,
            max_bytes=NETWORK.SSH_READ_BYTES,
            read_timeout_ms=self.read_timeout_ms
        )
        if not banner:
            return None

        label = parse_ssh_banner(banner)
        if label:
            logger.info(f"Device type detected via SSH on {address}: {label}")
        return label
