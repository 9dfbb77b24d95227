"""Tests for app/dependencies.py."""
import pytest

from app.dependencies import (
    AppDependencies,
    build_default_detectors,
    build_detectors,
    build_enhanced_detectors,
    create_dependencies,
)
from config import ConfigurationError
from discovery.detectors import (
    HttpDetector,
    MdnsDetector,
    ServiceEndpointDetector,
    SshDetector,
    UpnpDetector,
    WindowsServicesDetector,
)
from discovery.scanner import NetworkScanner
from storage.settings import PortDetectionOptions, ScannerOptions, SettingsManager
from tests.mocks import MockDetector, MockPingProbe, MockResolver, MockSubnetProvider


@pytest.fixture
def deps_kwargs(sync_event_bus):
    return dict(
        event_bus=sync_event_bus,
        subnet_provider=MockSubnetProvider(),
        ping_probe=MockPingProbe(),
        hostname_resolver=MockResolver(),
        mac_resolver=MockResolver(),
    )


class TestBuildDetectors:
    """Tests for detector construction by name."""

    def test_all_detectors_by_default(self):
        detectors = build_detectors(ScannerOptions(), PortDetectionOptions())
        assert {type(d) for d in detectors} == {
            UpnpDetector, MdnsDetector, ServiceEndpointDetector,
            HttpDetector, SshDetector, WindowsServicesDetector,
        }

    def test_default_and_enhanced_sets(self):
        default = build_default_detectors(ScannerOptions(), PortDetectionOptions())
        enhanced = build_enhanced_detectors(ScannerOptions(), PortDetectionOptions())
        assert [d.name for d in default] == ["service-endpoint", "http", "ssh", "windows"]
        assert [d.name for d in enhanced] == ["upnp", "mdns"]

    def test_unknown_name_ignored(self):
        detectors = build_detectors(ScannerOptions(), PortDetectionOptions(), ["ssh", "gopher"])
        assert [d.name for d in detectors] == ["ssh"]

    def test_options_are_passed_through(self):
        options = ScannerOptions(http_timeout_ms=750, passive_cache_ttl_seconds=60,
                                 upnp_grace_seconds=0.5)
        http, upnp = build_detectors(options, PortDetectionOptions(), ["http", "upnp"])
        assert http.read_timeout_ms == 750
        assert upnp.cache.ttl_seconds == 60
        assert upnp.grace_seconds == 0.5


class TestCreateDependencies:
    """Tests for create_dependencies."""

    def test_returns_wired_container(self, deps_kwargs):
        deps = create_dependencies(options=ScannerOptions(subnet_base="192.168.1"), **deps_kwargs)
        try:
            assert isinstance(deps, AppDependencies)
            assert isinstance(deps.scanner, NetworkScanner)
            assert deps.scanner.chain is deps.chain
            assert deps.event_bus is deps_kwargs["event_bus"]
            assert [d.priority for d in deps.chain.detectors] == [90, 85, 60, 50, 40, 30]
        finally:
            deps.close()

    def test_enabled_detectors_respected(self, deps_kwargs):
        options = ScannerOptions(enabled_detectors=["ssh", "http"])
        deps = create_dependencies(options=options, **deps_kwargs)
        try:
            assert [d.name for d in deps.chain.detectors] == ["http", "ssh"]
        finally:
            deps.close()

    def test_extra_detectors_registered(self, deps_kwargs):
        custom = MockDetector(priority=95, name="custom")
        deps = create_dependencies(options=ScannerOptions(enabled_detectors=["ssh"]),
                                   extra_detectors=[custom], **deps_kwargs)
        try:
            assert deps.chain.detectors[0] is custom
        finally:
            deps.close()
        assert custom.closed

    def test_invalid_options_rejected(self, deps_kwargs):
        with pytest.raises(ConfigurationError):
            create_dependencies(options=ScannerOptions(max_concurrent_connections=0), **deps_kwargs)

    def test_loads_saved_settings(self, temp_data_dir, deps_kwargs):
        SettingsManager(temp_data_dir).update_scanner_options(
            ScannerOptions(subnet_base="10.9.8", enabled_detectors=["windows"])
        )
        deps = create_dependencies(data_dir=temp_data_dir, **deps_kwargs)
        try:
            assert deps.options.subnet_base == "10.9.8"
            assert [d.name for d in deps.chain.detectors] == ["windows"]
        finally:
            deps.close()

    def test_end_to_end_sweep_with_fakes(self, deps_kwargs):
        deps_kwargs["ping_probe"] = MockPingProbe({"192.168.1.2": 1.0})
        custom = MockDetector(priority=95, default="Custom Device")
        options = ScannerOptions(subnet_base="192.168.1", end_ip=3, enabled_detectors=[],
                                 network_throttle_delay_ms=0)
        deps = create_dependencies(options=options, extra_detectors=[custom], **deps_kwargs)
        try:
            devices = deps.scanner.scan_network()
        finally:
            deps.close()
        assert [(d.address, d.type) for d in devices] == [("192.168.1.2", "Custom Device")]
