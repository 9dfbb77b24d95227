"""Hostname and MAC address lookups for discovered devices.

Both are best-effort: a None result leaves the device's name or MAC as it is.
"""
import re
import socket
import sys
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Dict, Optional

from config import INTERVALS, get_logger
from config.subprocess_cache import run_with_fallback

logger = get_logger(__name__)

# "192.168.1.1 dev eth0 lladdr aa:bb:cc:dd:ee:ff REACHABLE"
_IP_NEIGH_RE = re.compile(r'^(\d+\.\d+\.\d+\.\d+)\s.*?lladdr\s+([0-9a-fA-F:]+)', re.MULTILINE)
# "? (192.168.1.1) at aa:bb:cc:dd:ee:ff on en0 ifscope [ethernet]"
_ARP_RE = re.compile(r'\((\d+\.\d+\.\d+\.\d+)\)\s+at\s+([0-9a-fA-F:]+)')
# "  192.168.1.1           aa-bb-cc-dd-ee-ff     dynamic" (Windows arp -a)
_WINDOWS_ARP_RE = re.compile(
    r'^\s*(\d+\.\d+\.\d+\.\d+)\s+([0-9a-fA-F]{2}(?:-[0-9a-fA-F]{2}){5})\s', re.MULTILINE
)

NEIGHBOR_COMMANDS = [['ip', 'neigh', 'show'], ['arp', '-an']]
WINDOWS_NEIGHBOR_COMMANDS = [['arp', '-a']]


def neighbor_commands(platform: str = None) -> list:
    platform = platform or sys.platform
    if platform.startswith('win'):
        return WINDOWS_NEIGHBOR_COMMANDS
    return NEIGHBOR_COMMANDS


def normalize_mac(mac_address: str) -> str:
    """Normalize to uppercase colon form with zero-padded octets.

    macOS prints "a:b:c:d:e:f"; this returns "0A:0B:0C:0D:0E:0F".
    """
    parts = re.split(r'[:-]', mac_address.strip())
    if len(parts) != 6:
        return mac_address.upper()
    return ':'.join(part.zfill(2) for part in parts).upper()


def parse_neighbor_table(output: str) -> Dict[str, str]:
    """Map address -> normalized MAC from `ip neigh`, `arp -an` or Windows `arp -a` output."""
    table = {}
    for pattern in (_IP_NEIGH_RE, _ARP_RE, _WINDOWS_ARP_RE):
        for address, mac in pattern.findall(output):
            mac = normalize_mac(mac)
            if mac in ('00:00:00:00:00:00', 'FF:FF:FF:FF:FF:FF'):
                continue
            table[address] = mac
    return table


class MacAddressResolver:
    """Reads the OS neighbor table; cached briefly across a sweep."""

    def __init__(self, cache_ttl: float = INTERVALS.ARP_CACHE_TTL_SECONDS):
        self.cache_ttl = cache_ttl

    def resolve(self, address: str) -> Optional[str]:
        result = run_with_fallback(neighbor_commands(), ttl=self.cache_ttl)
        if result is None:
            return None
        return parse_neighbor_table(result.stdout or '').get(address)


def format_hostname(fqdn: str) -> str:
    """Format as HOST (domain), e.g. "nas.office.lan" -> "NAS (office)".

    Only the first domain label is kept, and only when longer than two
    characters.
    """
    parts = fqdn.rstrip('.').split('.')
    host = parts[0].upper()
    if len(parts) > 1 and len(parts[1]) > 2:
        return f"{host} ({parts[1]})"
    return host


class HostnameResolver:
    """Reverse DNS lookup with a bounded wait.

    socket.gethostbyaddr has no timeout parameter, so lookups run on a
    small pool and the caller waits at most ``timeout`` seconds.
    """

    def __init__(self, timeout: float = INTERVALS.HOSTNAME_RESOLVE_TIMEOUT, max_workers: int = 4):
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rdns")

    def resolve(self, address: str) -> Optional[str]:
        future = self._pool.submit(socket.gethostbyaddr, address)
        try:
            hostname, _, _ = future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.debug(f"Reverse lookup timed out for {address}")
            return None
        except (socket.herror, socket.gaierror, OSError) as e:
            logger.debug(f"Reverse lookup failed for {address}: {e}")
            return None

        if not hostname or hostname == address:
            return None
        return format_hostname(hostname)

    def close(self) -> None:
        self._pool.shutdown(wait=False)
