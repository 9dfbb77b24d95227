"""Device type detectors.

Active detectors contact the address directly; passive detectors classify
from multicast announcements they have already heard.

Priorities (higher runs first):
    upnp 90, mdns 85, service-endpoint 60, http 50, ssh 40, windows 30
"""
from .base import DeviceTypeDetector
from .endpoints import ServiceEndpointDetector
from .http import HttpDetector
from .mdns import MdnsDetector
from .passive import DiscoveryCache, DiscoveryState, PassiveDiscoveryDetector
from .ssh import SshDetector
from .upnp import UpnpDetector
from .windows import WindowsServicesDetector

__all__ = [
    "DeviceTypeDetector",
    "PassiveDiscoveryDetector",
    "DiscoveryCache",
    "DiscoveryState",
    # Active
    "HttpDetector",
    "SshDetector",
    "WindowsServicesDetector",
    "ServiceEndpointDetector",
    # Passive
    "UpnpDetector",
    "MdnsDetector",
]
