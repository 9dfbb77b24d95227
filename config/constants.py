"""Centralized constants for netsweep.

Protocol addresses, fixed service lists, timing defaults and file names
live here so detectors and the scanner never hard-code them.

Usage:
    from config.constants import NETWORK, INTERVALS, STORAGE

    group = (NETWORK.SSDP_ADDR, NETWORK.SSDP_PORT)
    grace = INTERVALS.MDNS_GRACE_SECONDS
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Intervals:
    """Time intervals for discovery operations (in seconds)."""
    # Passive discovery
    SSDP_RESEARCH_SECONDS: float = 30.0   # Resend M-SEARCH this often
    SSDP_RECEIVE_POLL_SECONDS: float = 1.0
    MDNS_GRACE_SECONDS: float = 1.5       # Wait for answers after a cache miss
    UPNP_GRACE_SECONDS: float = 2.0
    PASSIVE_CACHE_TTL_SECONDS: float = 1800.0

    # Collaborators
    ARP_CACHE_TTL_SECONDS: float = 10.0
    HOSTNAME_RESOLVE_TIMEOUT: float = 2.0

    # Subprocess timeouts
    SUBPROCESS_TIMEOUT_SECONDS: float = 5.0
    PING_OVERHEAD_SECONDS: float = 3.0    # Added to the ping timeout for the process itself

    # Background scheduler
    SCHEDULER_RETRY_SECONDS: float = 30.0
    SCHEDULER_JOIN_SECONDS: float = 5.0


@dataclass(frozen=True)
class NetworkConfig:
    """Network protocol configuration."""
    # SSDP / UPnP
    SSDP_ADDR: str = "239.255.255.250"
    SSDP_PORT: int = 1900
    SSDP_MX: int = 3
    SSDP_SEARCH_TARGET: str = "ssdp:all"
    SSDP_MULTICAST_TTL: int = 2

    # mDNS / Zeroconf
    MDNS_RESOLVE_TIMEOUT_MS: int = 3000

    # Probe buffers
    HTTP_READ_BYTES: int = 1024
    SSH_READ_BYTES: int = 256
    DATAGRAM_BYTES: int = 8192

    # Well-known mDNS service types queried at discovery start
    MDNS_SERVICE_TYPES: Tuple[str, ...] = (
        "_http._tcp",
        "_https._tcp",
        "_ssh._tcp",
        "_sftp-ssh._tcp",
        "_printer._tcp",
        "_ipp._tcp",
        "_scanner._tcp",
        "_smb._tcp",
        "_afpovertcp._tcp",
        "_device-info._tcp",
        "_workstation._tcp",
        "_airplay._tcp",
        "_homekit._tcp",
        "_hap._tcp",
        "_raop._tcp",
        "_googlecast._tcp",
        "_spotify-connect._tcp",
        "_sonos._tcp",
        "_hue._tcp",
        "_homeassistant._tcp",
        "_octoprint._tcp",
        "_mqtt._tcp",
        "_rfb._tcp",
        "_daap._tcp",
        "_radicale._tcp",
    )


@dataclass(frozen=True)
class StorageConfig:
    """Storage and file-related configuration."""
    DATA_DIR_NAME: str = ".netsweep"
    SETTINGS_FILE: str = "settings.json"
    LOG_FILE: str = "netsweep.log"

    # Log rotation
    LOG_MAX_BYTES: int = 5_000_000  # 5MB
    LOG_BACKUP_COUNT: int = 3


# Global instances - import these
INTERVALS = Intervals()
NETWORK = NetworkConfig()
STORAGE = StorageConfig()


# Allowed commands for subprocess safety
ALLOWED_SUBPROCESS_COMMANDS = frozenset({
    'ping',
    'ip',
    'arp',
})
