"""LAN device discovery and classification.

Modules:
    subnet: Address ranges and local subnet detection
    ping: ICMP reachability probe
    detectors: Device type detectors (active probes and multicast listeners)
    classifier: Priority-ordered detector chain
    device_table: Thread-safe device store
    resolvers: Hostname and MAC lookups
    scanner: Sweep orchestration and background scheduling

Example:
    >>> from discovery import NetworkScanner, DetectorChain
    >>> from discovery.detectors import HttpDetector, SshDetector
    >>> from storage.settings import PortDetectionOptions, ScannerOptions
    >>> ports = PortDetectionOptions()
    >>> chain = DetectorChain([HttpDetector(ports), SshDetector(ports)])
    >>> scanner = NetworkScanner(ScannerOptions(subnet_base="192.168.1"), chain)
    >>> for device in scanner.scan_network():
    ...     print(device.address, device.type)
"""
from .classifier import DetectorChain
from .device_table import DeviceTable
from .models import NetworkDevice
from .ping import PingProbe, PingResult
from .resolvers import HostnameResolver, MacAddressResolver
from .scanner import NetworkScanner
from .subnet import AddressRange, LocalSubnetProvider

__all__ = [
    "NetworkScanner",
    "NetworkDevice",
    "DeviceTable",
    "DetectorChain",
    "AddressRange",
    "LocalSubnetProvider",
    "PingProbe",
    "PingResult",
    "HostnameResolver",
    "MacAddressResolver",
]
