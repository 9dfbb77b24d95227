"""ICMP reachability probe using the system ping binary."""
import re
import sys
from dataclasses import dataclass
from typing import Optional

from config import INTERVALS, SubprocessError, get_logger
from config.subprocess_cache import safe_run

logger = get_logger(__name__)

# "time=9.742 ms" or "time<1 ms" (Linux, macOS, Windows)
_TIME_RE = re.compile(r'time[=<]\s*(\d+\.?\d*)\s*ms', re.IGNORECASE)
# macOS summary "round-trip min/avg/max/stddev = X/Y/Z/W ms"
_ROUND_TRIP_RE = re.compile(r'(?:round-trip|rtt).*?=\s*[\d.]+/([\d.]+)/')


@dataclass(frozen=True)
class PingResult:
    """Outcome of a single echo request."""
    reachable: bool
    rtt_ms: Optional[float] = None


UNREACHABLE = PingResult(reachable=False)


def build_ping_command(address: str, timeout_ms: int, platform: str = None) -> list:
    """Single-echo ping command with the platform's timeout flag."""
    platform = platform or sys.platform
    if platform.startswith('win'):
        return ['ping', '-n', '1', '-w', str(timeout_ms), address]
    if platform == 'darwin':
        # macOS -W is in milliseconds
        return ['ping', '-c', '1', '-W', str(timeout_ms), address]
    seconds = max(1, (timeout_ms + 999) // 1000)
    return ['ping', '-c', '1', '-W', str(seconds), address]


def parse_rtt(output: str) -> Optional[float]:
    """Extract the round-trip time in ms from ping output."""
    match = _TIME_RE.search(output)
    if match:
        return float(match.group(1))
    match = _ROUND_TRIP_RE.search(output)
    if match:
        return float(match.group(1))
    return None


class PingProbe:
    """Sends one echo request and reports reachability. Never raises."""

    def probe(self, address: str, timeout_ms: int) -> PingResult:
        cmd = build_ping_command(address, timeout_ms)
        try:
            result = safe_run(cmd, timeout=timeout_ms / 1000 + INTERVALS.PING_OVERHEAD_SECONDS)
        except SubprocessError as e:
            logger.debug(f"Ping {address} failed: {e}")
            return UNREACHABLE

        if result.returncode != 0:
            return UNREACHABLE

        # Windows exits 0 for "Destination host unreachable" replies
        if 'unreachable' in (result.stdout or '').lower() and 'ttl=' not in result.stdout.lower():
            return UNREACHABLE

        return PingResult(reachable=True, rtt_ms=parse_rtt(result.stdout or ''))
