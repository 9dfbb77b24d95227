"""UPnP/SSDP discovery detector.

Sends SSDP M-SEARCH requests to 239.255.255.250:1900, collects responses
(and NOTIFY announcements when the multicast group can be joined), fetches
each device description XML once per cache window and labels the device
from its friendlyName/manufacturer/modelName/deviceType.

Wire format of a search response:

    HTTP/1.1 200 OK
    CACHE-CONTROL: max-age=1800
    LOCATION: http://192.168.1.50:49152/description.xml
    SERVER: Linux/3.14 UPnP/1.0 Samsung/1.0
    ST: urn:schemas-upnp-org:device:MediaRenderer:1
"""
import socket
import struct
import threading
import urllib.request
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from config import INTERVALS, NETWORK, DetectorError, get_logger
from discovery.detectors.passive import DiscoveryCache, PassiveDiscoveryDetector
from discovery.subnet import is_valid_ipv4

logger = get_logger(__name__)

M_SEARCH = (
    'M-SEARCH * HTTP/1.1\r\n'
    f'HOST: {NETWORK.SSDP_ADDR}:{NETWORK.SSDP_PORT}\r\n'
    'MAN: "ssdp:discover"\r\n'
    f'MX: {NETWORK.SSDP_MX}\r\n'
    f'ST: {NETWORK.SSDP_SEARCH_TARGET}\r\n'
    '\r\n'
).encode('ascii')

MAX_DESCRIPTION_BYTES = 256 * 1024

# Matched against the lowercased deviceType URN, first hit wins
DEVICE_TYPE_HINTS = (
    (("mediaserver",), "Media Server"),
    (("mediarenderer",), "Media Renderer"),
    (("printer",), "Printer"),
    (("scanner",), "Scanner"),
    (("router", "gateway"), "Router/Gateway"),
    (("tv", "television"), "Smart TV"),
    (("light",), "Smart Light"),
    (("thermostat",), "Thermostat"),
    (("camera",), "Camera"),
    (("storage",), "Network Storage"),
)

GENERIC_UPNP_LABEL = "UPnP Device"


def parse_ssdp_message(text: str) -> Optional[Dict[str, str]]:
    """Parse an SSDP response or NOTIFY into lowercase header names.

    Returns None for anything else, including other hosts' M-SEARCH
    requests seen on the multicast group.
    """
    lines = text.replace('\r\n', '\n').split('\n')
    start = lines[0].strip().upper() if lines else ''
    if not (start.startswith('HTTP/1.') or start.startswith('NOTIFY')):
        return None

    headers = {}
    for line in lines[1:]:
        if ':' not in line:
            continue
        name, value = line.split(':', 1)
        headers[name.strip().lower()] = value.strip()
    return headers


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def parse_device_description(xml_text: str) -> Optional[Dict[str, str]]:
    """Read the first <device> element of a UPnP description.

    Element names are matched without regard to namespace, so documents
    that omit urn:schemas-upnp-org:device-1-0 still parse.

    Returns:
        Dict with friendlyName, manufacturer, modelName and deviceType
        (missing ones empty), or None if the XML is invalid or has no device.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.debug(f"Invalid UPnP description XML: {e}")
        return None

    device = None
    for element in root.iter():
        if _local_name(element.tag) == 'device':
            device = element
            break
    if device is None:
        return None

    fields = {'friendlyName': '', 'manufacturer': '', 'modelName': '', 'deviceType': ''}
    for child in device:
        name = _local_name(child.tag)
        if name in fields and not fields[name] and child.text:
            fields[name] = child.text.strip()
    return fields


def device_type_hint(device_type: str) -> Optional[str]:
    """e.g. urn:schemas-upnp-org:device:MediaServer:1 -> "Media Server"."""
    if not device_type:
        return None
    lowered = device_type.lower()
    for needles, hint in DEVICE_TYPE_HINTS:
        if any(needle in lowered for needle in needles):
            return hint
    return None


def build_upnp_label(friendly_name: str = '', manufacturer: str = '',
                     model_name: str = '', device_type: str = '') -> str:
    parts: List[str] = []
    if friendly_name and friendly_name != manufacturer:
        parts.append(friendly_name)
    elif model_name:
        parts.append(f"{manufacturer} {model_name}" if manufacturer else model_name)
    elif manufacturer:
        parts.append(manufacturer)

    hint = device_type_hint(device_type)
    if hint:
        parts.append(hint)

    if not parts:
        return GENERIC_UPNP_LABEL
    return " - ".join(parts) + " (UPnP)"


def label_from_description(xml_text: str) -> Optional[str]:
    fields = parse_device_description(xml_text)
    if fields is None:
        return None
    return build_upnp_label(
        fields['friendlyName'], fields['manufacturer'],
        fields['modelName'], fields['deviceType']
    )


def fetch_description(url: str, timeout: float) -> str:
    """GET a device description document.

    Raises:
        OSError: urllib.error.URLError and socket timeouts.
        http.client.HTTPException: Malformed responses.
        LookupError: Unknown charset.
    """
    request = urllib.request.Request(url, headers={'User-Agent': 'netsweep UPnP/1.0'})
    with urllib.request.urlopen(request, timeout=timeout) as response:  # nosec B310 - LAN description URL
        raw = response.read(MAX_DESCRIPTION_BYTES)
        charset = response.headers.get_content_charset() or 'utf-8'
    return raw.decode(charset, errors='replace')


class UpnpDetector(PassiveDiscoveryDetector):
    """Classifies devices that answer SSDP searches.

    Args:
        port_options: Supplies the HTTP timeout for description fetches.
        cache_ttl_seconds: Lifetime of cached labels and fetched locations.
        grace_seconds: Wait after a re-search on a cache miss.
        listen_for_notify: Also bind 1900 and join the group for NOTIFYs.
        fetcher: ``(url, timeout) -> xml text``; injectable for tests.
    """

    priority = 90
    name = "upnp"

    def __init__(self, port_options=None,
                 cache_ttl_seconds: float = INTERVALS.PASSIVE_CACHE_TTL_SECONDS,
                 grace_seconds: float = INTERVALS.UPNP_GRACE_SECONDS,
                 listen_for_notify: bool = True,
                 fetcher: Callable[[str, float], str] = fetch_description):
        super().__init__(cache_ttl_seconds, grace_seconds)
        timeout_ms = port_options.port_connection_timeout_ms if port_options else 1000
        self.fetch_timeout = timeout_ms / 1000
        self.listen_for_notify = listen_for_notify
        self._fetcher = fetcher
        self._locations = DiscoveryCache(cache_ttl_seconds)
        self._search_sock: Optional[socket.socket] = None
        self._notify_sock: Optional[socket.socket] = None
        self._joined_group = False
        self._threads: List[threading.Thread] = []
        self._fetch_pool: Optional[ThreadPoolExecutor] = None

    # === Lifecycle ===

    def _start(self) -> None:
        self._stop_event.clear()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, NETWORK.SSDP_MULTICAST_TTL)
            sock.bind(('', 0))
            sock.settimeout(INTERVALS.SSDP_RECEIVE_POLL_SECONDS)
        except OSError as e:
            sock.close()
            raise DetectorError(f"SSDP search socket unavailable: {e}", detector=self.name) from e
        self._search_sock = sock

        if self.listen_for_notify:
            self._notify_sock = self._open_notify_socket()

        self._fetch_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="upnp-fetch")
        self._spawn(self._receive_loop, self._search_sock, "upnp-search-rx")
        if self._notify_sock is not None:
            self._spawn(self._receive_loop, self._notify_sock, "upnp-notify-rx")
        self._spawn(self._research_loop, None, "upnp-research")

        self.send_search()

    def _open_notify_socket(self) -> Optional[socket.socket]:
        """Bind the SSDP port and join the group; None if the port is taken."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, 'SO_REUSEPORT'):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind(('', NETWORK.SSDP_PORT))
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._membership())
            sock.settimeout(INTERVALS.SSDP_RECEIVE_POLL_SECONDS)
        except OSError as e:
            logger.debug(f"SSDP NOTIFY listener unavailable, search responses only: {e}")
            sock.close()
            return None
        self._joined_group = True
        return sock

    @staticmethod
    def _membership() -> bytes:
        return struct.pack('4s4s', socket.inet_aton(NETWORK.SSDP_ADDR), socket.inet_aton('0.0.0.0'))

    def _spawn(self, target, sock, name: str) -> None:
        args = (sock,) if sock is not None else ()
        thread = threading.Thread(target=target, args=args, daemon=True, name=name)
        thread.start()
        self._threads.append(thread)

    def _stop(self) -> None:
        self._stop_event.set()
        if self._notify_sock is not None:
            if self._joined_group:
                try:
                    self._notify_sock.setsockopt(
                        socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._membership()
                    )
                except OSError as e:
                    logger.debug(f"Leaving SSDP group failed: {e}")
                self._joined_group = False
            self._notify_sock.close()
            self._notify_sock = None
        if self._search_sock is not None:
            self._search_sock.close()
            self._search_sock = None

        for thread in self._threads:
            thread.join(timeout=INTERVALS.SSDP_RECEIVE_POLL_SECONDS * 2)
        self._threads = []
        if self._fetch_pool is not None:
            self._fetch_pool.shutdown(wait=False)
            self._fetch_pool = None

    # === Network ===

    def send_search(self) -> None:
        sock = self._search_sock
        if sock is None:
            return
        try:
            sock.sendto(M_SEARCH, (NETWORK.SSDP_ADDR, NETWORK.SSDP_PORT))
            logger.debug("SSDP M-SEARCH sent")
        except OSError as e:
            logger.debug(f"SSDP M-SEARCH send failed: {e}")

    def _refresh(self) -> None:
        self.send_search()

    def _research_loop(self) -> None:
        while not self._stop_event.wait(INTERVALS.SSDP_RESEARCH_SECONDS):
            self.send_search()

    def _receive_loop(self, sock: socket.socket) -> None:
        while not self._stop_event.is_set():
            try:
                data, (sender, _port) = sock.recvfrom(NETWORK.DATAGRAM_BYTES)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_event.is_set():
                    break
                logger.debug(f"SSDP receive failed: {e}")
                continue

            pool = self._fetch_pool
            if pool is None:
                break
            try:
                pool.submit(self.handle_datagram, data, sender)
            except RuntimeError:
                break  # pool shut down during close()

    # === Processing ===

    def handle_datagram(self, data: bytes, sender: str) -> Optional[str]:
        """Process one SSDP datagram and cache the resulting label.

        Returns:
            The label cached for the device, or None if nothing was learned.
        """
        try:
            headers = parse_ssdp_message(data.decode('utf-8', errors='replace'))
            if headers is None:
                return None
            if headers.get('nts', '').lower() == 'ssdp:byebye':
                return None

            location = headers.get('location', '')
            host = urlparse(location).hostname if location else None
            key = host if host and is_valid_ipv4(host) else sender
            if not is_valid_ipv4(key):
                return None

            if not location:
                return self._cache_server_label(key, headers)
            if not self._locations.claim(location):
                return self.cache.get(key)

            label = None
            try:
                label = label_from_description(self._fetcher(location, self.fetch_timeout))
            except Exception as e:
                logger.debug(f"UPnP description fetch failed for {location}: {e}")

            if label is None:
                return self._cache_server_label(key, headers)

            if self.cache.put(key, label):
                logger.info(f"UPnP device at {key}: {label}")
            return label
        except Exception as e:
            logger.debug(f"Error handling SSDP datagram from {sender}: {e}")
            return None

    def _cache_server_label(self, key: str, headers: Dict[str, str]) -> Optional[str]:
        server = headers.get('server')
        if not server:
            return None
        label = f"{server} (UPnP)"
        # A description-derived label is more specific than the SERVER header
        if self.cache.get(key) is None:
            self.cache.put(key, label)
            logger.info(f"UPnP device at {key} (SERVER header): {label}")
        return self.cache.get(key)
