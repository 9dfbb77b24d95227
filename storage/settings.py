"""Scanner and port-detection settings for netsweep."""
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config import STORAGE, ConfigurationError, get_logger

logger = get_logger(__name__)

DETECTOR_NAMES = ("upnp", "mdns", "service-endpoint", "http", "ssh", "windows")

DEFAULT_SERVICE_ENDPOINTS = [
    (8974, "IoT Service Endpoint 3"),
    (8975, "IoT Service Endpoint 1"),
    (12050, "IoT Service Endpoint 2"),
]

# Order matters: the first open port decides the label
DEFAULT_WINDOWS_SERVICE_PORTS = [
    (3389, "Remote Desktop Protocol"),
    (5985, "WinRM HTTP"),
    (5986, "WinRM HTTPS"),
    (445, "SMB"),
    (139, "NetBIOS"),
    (135, "RPC"),
]


def _port_table(value: Any, default: List[Tuple[int, str]]) -> List[Tuple[int, str]]:
    """Accept {"8974": "label"} or [[8974, "label"], ...] from JSON."""
    if value is None:
        return list(default)
    if isinstance(value, dict):
        items = value.items()
    else:
        items = value
    try:
        return [(int(port), str(label)) for port, label in items]
    except (TypeError, ValueError) as e:
        raise ConfigurationError("Malformed port table", {"value": value}) from e


def _check_port(port: Any, setting: str) -> None:
    if not isinstance(port, int) or not 1 <= port <= 65535:
        raise ConfigurationError(f"{setting} must contain ports between 1 and 65535",
                                 {setting: port})


def _check_positive(value: Any, setting: str) -> None:
    if not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(f"{setting} must be positive", {setting: value})


@dataclass
class ScannerOptions:
    """Sweep range, timing, concurrency and detector selection."""
    scan_interval_minutes: float = 5
    max_concurrent_connections: int = 20
    ping_timeout_ms: int = 2000
    http_timeout_ms: int = 2000
    ssh_timeout_ms: int = 2000
    subnet_base: str = "auto"       # "auto" or three octets, e.g. "192.168.1"
    start_ip: int = 1
    end_ip: int = 254
    network_throttle_delay_ms: int = 50
    devices_before_throttle: int = 10
    enable_continuous_scanning: bool = True
    enabled_detectors: List[str] = field(default_factory=lambda: list(DETECTOR_NAMES))

    # Passive discovery
    passive_cache_ttl_seconds: float = 1800.0
    mdns_grace_seconds: float = 1.5
    upnp_grace_seconds: float = 2.0

    def validate(self) -> None:
        """Raise ConfigurationError if any value is unusable."""
        for name in ("scan_interval_minutes", "max_concurrent_connections", "ping_timeout_ms",
                     "http_timeout_ms", "ssh_timeout_ms", "devices_before_throttle",
                     "passive_cache_ttl_seconds"):
            _check_positive(getattr(self, name), name)
        if self.network_throttle_delay_ms < 0:
            raise ConfigurationError("network_throttle_delay_ms cannot be negative",
                                     {"network_throttle_delay_ms": self.network_throttle_delay_ms})
        if self.mdns_grace_seconds < 0 or self.upnp_grace_seconds < 0:
            raise ConfigurationError("Grace periods cannot be negative")
        if not (0 <= self.start_ip <= self.end_ip <= 255):
            raise ConfigurationError("Invalid address range",
                                     {"start_ip": self.start_ip, "end_ip": self.end_ip})
        unknown = [d for d in self.enabled_detectors if d not in DETECTOR_NAMES]
        if unknown:
            raise ConfigurationError("Unknown detectors enabled",
                                     {"unknown": unknown, "known": list(DETECTOR_NAMES)})

    def to_dict(self) -> dict:
        return {
            "scan_interval_minutes": self.scan_interval_minutes,
            "max_concurrent_connections": self.max_concurrent_connections,
            "ping_timeout_ms": self.ping_timeout_ms,
            "http_timeout_ms": self.http_timeout_ms,
            "ssh_timeout_ms": self.ssh_timeout_ms,
            "subnet_base": self.subnet_base,
            "start_ip": self.start_ip,
            "end_ip": self.end_ip,
            "network_throttle_delay_ms": self.network_throttle_delay_ms,
            "devices_before_throttle": self.devices_before_throttle,
            "enable_continuous_scanning": self.enable_continuous_scanning,
            "enabled_detectors": list(self.enabled_detectors),
            "passive_cache_ttl_seconds": self.passive_cache_ttl_seconds,
            "mdns_grace_seconds": self.mdns_grace_seconds,
            "upnp_grace_seconds": self.upnp_grace_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ScannerOptions':
        defaults = cls()
        return cls(
            scan_interval_minutes=data.get("scan_interval_minutes", defaults.scan_interval_minutes),
            max_concurrent_connections=data.get("max_concurrent_connections",
                                                defaults.max_concurrent_connections),
            ping_timeout_ms=data.get("ping_timeout_ms", defaults.ping_timeout_ms),
            http_timeout_ms=data.get("http_timeout_ms", defaults.http_timeout_ms),
            ssh_timeout_ms=data.get("ssh_timeout_ms", defaults.ssh_timeout_ms),
            subnet_base=data.get("subnet_base", defaults.subnet_base),
            start_ip=data.get("start_ip", defaults.start_ip),
            end_ip=data.get("end_ip", defaults.end_ip),
            network_throttle_delay_ms=data.get("network_throttle_delay_ms",
                                               defaults.network_throttle_delay_ms),
            devices_before_throttle=data.get("devices_before_throttle",
                                             defaults.devices_before_throttle),
            enable_continuous_scanning=data.get("enable_continuous_scanning",
                                                defaults.enable_continuous_scanning),
            enabled_detectors=list(data.get("enabled_detectors", defaults.enabled_detectors)),
            passive_cache_ttl_seconds=data.get("passive_cache_ttl_seconds",
                                               defaults.passive_cache_ttl_seconds),
            mdns_grace_seconds=data.get("mdns_grace_seconds", defaults.mdns_grace_seconds),
            upnp_grace_seconds=data.get("upnp_grace_seconds", defaults.upnp_grace_seconds),
        )


@dataclass
class PortDetectionOptions:
    """Ports and label tables for the active detectors.

    Port tables are ordered lists of (port, label) pairs.
    """
    custom_iot_ports: List[int] = field(default_factory=lambda: [5000, 8000, 8080, 8443])
    standard_http_ports: List[int] = field(default_factory=lambda: [80, 443])
    service_endpoints: List[Tuple[int, str]] = field(
        default_factory=lambda: list(DEFAULT_SERVICE_ENDPOINTS))
    windows_service_ports: List[Tuple[int, str]] = field(
        default_factory=lambda: list(DEFAULT_WINDOWS_SERVICE_PORTS))
    ssh_port: int = 22
    port_connection_timeout_ms: int = 1000

    def validate(self) -> None:
        for port in list(self.custom_iot_ports) + list(self.standard_http_ports):
            _check_port(port, "http ports")
        for table_name in ("service_endpoints", "windows_service_ports"):
            for entry in getattr(self, table_name):
                if len(entry) != 2 or not entry[1]:
                    raise ConfigurationError(f"{table_name} entries need a port and a label",
                                             {table_name: entry})
                _check_port(entry[0], table_name)
        _check_port(self.ssh_port, "ssh_port")
        _check_positive(self.port_connection_timeout_ms, "port_connection_timeout_ms")

    def to_dict(self) -> dict:
        return {
            "custom_iot_ports": list(self.custom_iot_ports),
            "standard_http_ports": list(self.standard_http_ports),
            "service_endpoints": [[port, label] for port, label in self.service_endpoints],
            "windows_service_ports": [[port, label] for port, label in self.windows_service_ports],
            "ssh_port": self.ssh_port,
            "port_connection_timeout_ms": self.port_connection_timeout_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PortDetectionOptions':
        defaults = cls()
        return cls(
            custom_iot_ports=list(data.get("custom_iot_ports", defaults.custom_iot_ports)),
            standard_http_ports=list(data.get("standard_http_ports", defaults.standard_http_ports)),
            service_endpoints=_port_table(data.get("service_endpoints"), DEFAULT_SERVICE_ENDPOINTS),
            windows_service_ports=_port_table(data.get("windows_service_ports"),
                                              DEFAULT_WINDOWS_SERVICE_PORTS),
            ssh_port=data.get("ssh_port", defaults.ssh_port),
            port_connection_timeout_ms=data.get("port_connection_timeout_ms",
                                                defaults.port_connection_timeout_ms),
        )


class SettingsManager:
    """Loads and saves scanner settings as JSON.

    File layout:
        {"scanner": {...ScannerOptions...}, "ports": {...PortDetectionOptions...}}
    """

    DEFAULT_SETTINGS_FILE = STORAGE.SETTINGS_FILE

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.settings_file = data_dir / self.DEFAULT_SETTINGS_FILE
        self._lock = threading.Lock()
        self._scanner = ScannerOptions()
        self._ports = PortDetectionOptions()
        self._load()

    def _load(self) -> None:
        """Load settings from file; fall back to defaults on any problem."""
        if not self.settings_file.exists():
            return
        try:
            with open(self.settings_file, 'r') as f:
                data = json.load(f)
            self._scanner = ScannerOptions.from_dict(data.get("scanner", {}))
            self._ports = PortDetectionOptions.from_dict(data.get("ports", {}))
        except (json.JSONDecodeError, IOError, AttributeError, ConfigurationError) as e:
            logger.warning(f"Could not load settings, using defaults: {e}")
            self._scanner = ScannerOptions()
            self._ports = PortDetectionOptions()

    def _save(self) -> None:
        """Save settings to file."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w') as f:
                json.dump({"scanner": self._scanner.to_dict(), "ports": self._ports.to_dict()},
                          f, indent=2)
        except IOError as e:
            logger.error(f"Error saving settings: {e}")

    @property
    def scanner_options(self) -> ScannerOptions:
        return self._scanner

    @property
    def port_options(self) -> PortDetectionOptions:
        return self._ports

    def update_scanner_options(self, options: ScannerOptions) -> None:
        """Validate and persist new scanner options.

        Raises:
            ConfigurationError: If the options are invalid; nothing is saved.
        """
        options.validate()
        with self._lock:
            self._scanner = options
            self._save()

    def update_port_options(self, options: PortDetectionOptions) -> None:
        options.validate()
        with self._lock:
            self._ports = options
            self._save()

    def set_value(self, key: str, value: Any) -> None:
        """Change one ScannerOptions field by name."""
        data = self._scanner.to_dict()
        if key not in data:
            raise ConfigurationError(f"Unknown setting: {key}")
        data[key] = value
        self.update_scanner_options(ScannerOptions.from_dict(data))

    def as_dict(self) -> Dict[str, dict]:
        return {"scanner": self._scanner.to_dict(), "ports": self._ports.to_dict()}


def get_settings_manager(data_dir: Optional[Path] = None) -> SettingsManager:
    """Create a settings manager for the default or given data directory."""
    if data_dir is None:
        data_dir = Path.home() / STORAGE.DATA_DIR_NAME
    return SettingsManager(data_dir)
