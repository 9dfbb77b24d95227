"""mDNS / Zeroconf discovery detector.

Browses a fixed list of well-known service types and labels each address
from the advertised instance name plus a hint derived from the service
type, e.g. "Kitchen._sonos._tcp.local." at 192.168.1.40 becomes
"Kitchen - Sonos Speaker (mDNS)".
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from zeroconf import IPVersion, ServiceBrowser, ServiceStateChange, Zeroconf

from config import INTERVALS, NETWORK, get_logger
from discovery.detectors.passive import PassiveDiscoveryDetector

logger = get_logger(__name__)

# Matched against the lowercased service type, first hit wins
SERVICE_HINTS = (
    (("_printer", "_ipp"), "Printer"),
    (("_scanner",), "Scanner"),
    (("_airplay",), "AirPlay Device"),
    (("_homekit", "_hap"), "HomeKit Device"),
    (("_googlecast",), "Chromecast"),
    (("_spotify",), "Spotify Connect"),
    (("_sonos",), "Sonos Speaker"),
    (("_hue",), "Philips Hue"),
    (("_homeassistant",), "Home Assistant"),
    (("_octoprint",), "OctoPrint"),
    (("_mqtt",), "MQTT Broker"),
    (("_smb", "_afp"), "File Server"),
    (("_ssh", "_sftp"), "SSH Server"),
    (("_http",), "Web Server"),
    (("_workstation",), "Workstation"),
    (("_rfb",), "VNC Server"),
    (("_raop",), "Audio Receiver"),
    (("_daap",), "Media Library"),
)

GENERIC_MDNS_LABEL = "mDNS Device"


def browse_types() -> List[str]:
    return [f"{service}.local." for service in NETWORK.MDNS_SERVICE_TYPES]


def service_hint(service_type: str) -> Optional[str]:
    lowered = service_type.lower()
    for needles, hint in SERVICE_HINTS:
        if any(needle in lowered for needle in needles):
            return hint
    return None


def instance_name(name: str, service_type: str = '') -> str:
    """Strip the service suffix, e.g. "My Printer._ipp._tcp.local." -> "My Printer"."""
    suffix = '.' + service_type if service_type else ''
    if suffix and name.endswith(suffix):
        return name[:-len(suffix)]
    first_dot = name.find('.')
    return name[:first_dot] if first_dot > 0 else name


def build_mdns_label(instance: str, service_type: str, host_name: str = '') -> str:
    parts = []
    if instance:
        parts.append(instance)
    hint = service_hint(service_type)
    if hint:
        parts.append(hint)
    elif host_name:
        parts.append(host_name.rstrip('.'))

    if not parts:
        return GENERIC_MDNS_LABEL
    return " - ".join(parts) + " (mDNS)"


class MdnsDetector(PassiveDiscoveryDetector):
    """Classifies devices that advertise Zeroconf services.

    Resolution of each discovered instance runs on a small worker pool so
    the Zeroconf callback thread is never blocked.
    """

    priority = 85
    name = "mdns"

    def __init__(self, port_options=None,
                 cache_ttl_seconds: float = INTERVALS.PASSIVE_CACHE_TTL_SECONDS,
                 grace_seconds: float = INTERVALS.MDNS_GRACE_SECONDS,
                 zeroconf_factory: Callable[[], Zeroconf] = Zeroconf):
        super().__init__(cache_ttl_seconds, grace_seconds)
        self._zeroconf_factory = zeroconf_factory
        self._zeroconf: Optional[Zeroconf] = None
        self._browser: Optional[ServiceBrowser] = None
        self._resolver: Optional[ThreadPoolExecutor] = None

    def _start(self) -> None:
        self._zeroconf = self._zeroconf_factory()
        self._resolver = ThreadPoolExecutor(max_workers=4, thread_name_prefix="mdns-resolve")
        self._browser = ServiceBrowser(
            self._zeroconf, browse_types(), handlers=[self._on_service_state_change]
        )

    def _stop(self) -> None:
        if self._browser is not None:
            self._browser.cancel()
            self._browser = None
        if self._resolver is not None:
            self._resolver.shutdown(wait=False)
            self._resolver = None
        if self._zeroconf is not None:
            self._zeroconf.close()
            self._zeroconf = None

    def _on_service_state_change(self, zeroconf: Zeroconf, service_type: str,
                                 name: str, state_change: ServiceStateChange) -> None:
        if state_change not in (ServiceStateChange.Added, ServiceStateChange.Updated):
            return
        resolver = self._resolver
        if resolver is None or self._stop_event.is_set():
            return
        try:
            resolver.submit(self._resolve, zeroconf, service_type, name)
        except RuntimeError:
            pass  # shutting down

    def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        try:
            info = zeroconf.get_service_info(
                service_type, name, timeout=NETWORK.MDNS_RESOLVE_TIMEOUT_MS
            )
        except Exception as e:
            logger.debug(f"mDNS resolve failed for {name}: {e}")
            return
        if info is None:
            return
        self.handle_service_info(service_type, name, info)

    def handle_service_info(self, service_type: str, name: str, info) -> List[str]:
        """Cache a label for every IPv4 address of a resolved service.

        Returns:
            Addresses whose cached label changed.
        """
        addresses = info.parsed_addresses(IPVersion.V4Only)
        if not addresses:
            return []

        label = build_mdns_label(instance_name(name, service_type), service_type, info.server or '')
        changed = []
        for address in addresses:
            if self.cache.put(address, label, prefer_longer=True):
                changed.append(address)
                logger.info(f"mDNS device at {address}: {label}")
        return changed
