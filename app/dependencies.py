"""Dependency wiring for netsweep.

Builds the detector chain from the enabled detector names and assembles a
NetworkScanner with its collaborators, so embedding applications and tests
get a consistent object graph from one call.

Usage:
    from app.dependencies import create_dependencies

    deps = create_dependencies()
    devices = deps.scanner.scan_network()
    deps.close()
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from config import get_logger

logger = get_logger(__name__)

DEFAULT_DETECTORS = ("service-endpoint", "http", "ssh", "windows")
ENHANCED_DETECTORS = ("upnp", "mdns")


@dataclass
class AppDependencies:
    """Container for the scanner and what it was built from.

    Using a dataclass makes dependencies explicit and easy to mock in tests.
    """

    scanner: "NetworkScanner"
    chain: "DetectorChain"
    event_bus: "EventBus"
    options: "ScannerOptions"
    port_options: "PortDetectionOptions"

    def __post_init__(self):
        """Log dependency creation."""
        logger.debug(
            f"AppDependencies container created with detectors: "
            f"{[d.name for d in self.chain.detectors]}"
        )

    def close(self) -> None:
        """Stop scanning and release detector sockets."""
        self.scanner.close()


def _detector_factories(options, port_options) -> Dict[str, Callable[[], "DeviceTypeDetector"]]:
    from discovery.detectors import (
        HttpDetector,
        MdnsDetector,
        ServiceEndpointDetector,
        SshDetector,
        UpnpDetector,
        WindowsServicesDetector,
    )

    return {
        "service-endpoint": lambda: ServiceEndpointDetector(port_options),
        "http": lambda: HttpDetector(port_options, read_timeout_ms=options.http_timeout_ms),
        "ssh": lambda: SshDetector(port_options, read_timeout_ms=options.ssh_timeout_ms),
        "windows": lambda: WindowsServicesDetector(port_options),
        "upnp": lambda: UpnpDetector(
            port_options,
            cache_ttl_seconds=options.passive_cache_ttl_seconds,
            grace_seconds=options.upnp_grace_seconds,
        ),
        "mdns": lambda: MdnsDetector(
            port_options,
            cache_ttl_seconds=options.passive_cache_ttl_seconds,
            grace_seconds=options.mdns_grace_seconds,
        ),
    }


def build_detectors(options, port_options, names: Optional[Iterable[str]] = None) -> List["DeviceTypeDetector"]:
    """Instantiate detectors by name, in the given order.

    Args:
        names: Detector names; defaults to options.enabled_detectors.
    """
    factories = _detector_factories(options, port_options)
    detectors = []
    for name in (options.enabled_detectors if names is None else names):
        factory = factories.get(name)
        if factory is None:
            logger.warning(f"Unknown detector '{name}' ignored")
            continue
        detectors.append(factory())
    return detectors


def build_default_detectors(options, port_options) -> List["DeviceTypeDetector"]:
    """Active probes only: service endpoints, HTTP, SSH, Windows services."""
    return build_detectors(options, port_options, DEFAULT_DETECTORS)


def build_enhanced_detectors(options, port_options) -> List["DeviceTypeDetector"]:
    """Passive multicast discovery: UPnP/SSDP and mDNS."""
    return build_detectors(options, port_options, ENHANCED_DETECTORS)


def create_dependencies(
    options: Optional["ScannerOptions"] = None,
    port_options: Optional["PortDetectionOptions"] = None,
    event_bus: Optional["EventBus"] = None,
    extra_detectors: Iterable["DeviceTypeDetector"] = (),
    data_dir: Optional[Path] = None,
    subnet_provider=None,
    ping_probe=None,
    hostname_resolver=None,
    mac_resolver=None,
) -> AppDependencies:
    """Create a scanner and everything it needs.

    Options come from the arguments, else from settings.json in data_dir
    when one is given, else from defaults.

    Args:
        options: Scanner settings.
        port_options: Port tables for the active detectors.
        event_bus: Provide an existing event bus, or the global one is used.
        extra_detectors: Custom detectors registered after the built-in ones.
        data_dir: Directory holding settings.json.
        subnet_provider, ping_probe, hostname_resolver, mac_resolver:
            Override the default collaborators.

    Raises:
        ConfigurationError: If the options are invalid.
    """
    # Import here to avoid circular imports
    from app.events import get_event_bus
    from discovery.classifier import DetectorChain
    from discovery.resolvers import HostnameResolver, MacAddressResolver
    from discovery.scanner import NetworkScanner
    from storage.settings import PortDetectionOptions, ScannerOptions, SettingsManager

    logger.info("Creating scanner dependencies...")

    if data_dir is not None and (options is None or port_options is None):
        settings = SettingsManager(data_dir)
        options = options or settings.scanner_options
        port_options = port_options or settings.port_options
    options = options or ScannerOptions()
    port_options = port_options or PortDetectionOptions()
    options.validate()
    port_options.validate()

    # Use provided event bus or get global one
    if event_bus is None:
        event_bus = get_event_bus()

    chain = DetectorChain(build_detectors(options, port_options))
    for detector in extra_detectors:
        chain.register(detector)

    scanner = NetworkScanner(
        options=options,
        chain=chain,
        event_bus=event_bus,
        subnet_provider=subnet_provider,
        ping_probe=ping_probe,
        hostname_resolver=hostname_resolver or HostnameResolver(),
        mac_resolver=mac_resolver or MacAddressResolver(),
    )

    deps = AppDependencies(
        scanner=scanner,
        chain=chain,
        event_bus=event_bus,
        options=options,
        port_options=port_options,
    )

    logger.info("All dependencies created successfully")
    return deps
