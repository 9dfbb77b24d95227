"""Mock implementations for testing netsweep.

Provides fakes for the scanner's collaborators so sweeps can run without
touching the network.

Usage:
    from tests.mocks import MockPingProbe, MockDetector

    ping = MockPingProbe(reachable={"192.168.1.1": 2.5})
    detector = MockDetector(priority=90, labels={"192.168.1.1": "Smart TV (UPnP)"})
"""

import threading
import time
from typing import Dict, List, Optional

from discovery.detectors.base import DeviceTypeDetector
from discovery.ping import PingResult

# === Collaborators ===


class MockPingProbe:
    """Answers for a fixed set of addresses and records concurrency.

    Attributes:
        max_in_flight: Highest number of simultaneous probe() calls seen.
        probed: Addresses in the order they were probed.
    """

    def __init__(self, reachable: Optional[Dict[str, float]] = None, delay: float = 0.0,
                 raise_for: Optional[set] = None):
        self.reachable = dict(reachable or {})
        self.delay = delay
        self.raise_for = set(raise_for or ())
        self.probed: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def set_reachable(self, address: str, rtt_ms: Optional[float] = 1.0) -> None:
        self.reachable[address] = rtt_ms

    def set_unreachable(self, address: str) -> None:
        self.reachable.pop(address, None)

    def probe(self, address: str, timeout_ms: int) -> PingResult:
        with self._lock:
            self.probed.append(address)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if address in self.raise_for:
                raise RuntimeError(f"probe exploded for {address}")
            if address in self.reachable:
                return PingResult(reachable=True, rtt_ms=self.reachable[address])
            return PingResult(reachable=False)
        finally:
            with self._lock:
                self.in_flight -= 1


class MockDetector(DeviceTypeDetector):
    """Returns canned labels and counts calls.

    Args:
        priority: Chain priority.
        labels: address -> label; other addresses get None.
        default: Label for every address not in labels.
        raises: Raise from detect() instead of answering.
    """

    def __init__(self, priority: int = 50, labels: Optional[Dict[str, str]] = None,
                 default: Optional[str] = None, raises: bool = False, name: str = "mock"):
        self.priority = priority
        self.name = name
        self.labels = dict(labels or {})
        self.default = default
        self.raises = raises
        self.calls: List[str] = []
        self.closed = False
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def detect(self, address, cancel_event=None):
        with self._lock:
            self.calls.append(address)
        if self.raises:
            raise RuntimeError("detector failure")
        return self.labels.get(address, self.default)

    def close(self) -> None:
        self.closed = True


class MockSubnetProvider:
    """Returns a fixed subnet list regardless of the configured base."""

    def __init__(self, subnets: Optional[List[str]] = None):
        self.subnets = subnets if subnets is not None else ["192.168.1"]
        self.calls = 0

    def get_subnets(self, subnet_base: str = "auto") -> List[str]:
        self.calls += 1
        return list(self.subnets)


class MockResolver:
    """Hostname/MAC resolver backed by a dict."""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values = dict(values or {})
        self.calls: List[str] = []

    def resolve(self, address: str) -> Optional[str]:
        self.calls.append(address)
        return self.values.get(address)


class BlockingPingProbe(MockPingProbe):
    """Holds every probe until released, so tests can act mid-sweep."""

    def __init__(self, reachable: Optional[Dict[str, float]] = None):
        super().__init__(reachable)
        self.started = threading.Event()
        self.release = threading.Event()

    def probe(self, address: str, timeout_ms: int) -> PingResult:
        self.started.set()
        self.release.wait(5.0)
        return super().probe(address, timeout_ms)


class MockServiceInfo:
    """Stand-in for zeroconf.ServiceInfo."""

    def __init__(self, addresses: List[str], server: Optional[str] = None):
        self._addresses = addresses
        self.server = server

    def parsed_addresses(self, version=None) -> List[str]:
        return list(self._addresses)
