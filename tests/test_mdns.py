"""Tests for discovery/detectors/mdns.py."""
from unittest.mock import MagicMock, patch

from zeroconf import BadTypeInNameException, ServiceStateChange

from discovery.detectors.mdns import (
    GENERIC_MDNS_LABEL,
    MdnsDetector,
    browse_types,
    build_mdns_label,
    instance_name,
    service_hint,
)
from discovery.detectors.passive import DiscoveryState
from tests.mocks import MockServiceInfo


class TestLabels:
    """Tests for mDNS label construction."""

    def test_browse_types_are_fully_qualified(self):
        types = browse_types()
        assert "_googlecast._tcp.local." in types
        assert all(t.endswith(".local.") for t in types)

    def test_service_hints(self):
        assert service_hint("_ipp._tcp.local.") == "Printer"
        assert service_hint("_googlecast._tcp.local.") == "Chromecast"
        assert service_hint("_hap._tcp.local.") == "HomeKit Device"
        assert service_hint("_device-info._tcp.local.") is None

    def test_instance_name(self):
        assert instance_name("Kitchen._sonos._tcp.local.", "_sonos._tcp.local.") == "Kitchen"
        assert instance_name("Office.Printer._ipp._tcp.local.", "_ipp._tcp.local.") == "Office.Printer"

    def test_label_with_hint(self):
        assert build_mdns_label("Kitchen", "_sonos._tcp.local.") == "Kitchen - Sonos Speaker (mDNS)"

    def test_label_falls_back_to_host_name(self):
        label = build_mdns_label("box", "_device-info._tcp.local.", "box.local.")
        assert label == "box - box.local (mDNS)"

    def test_generic_label(self):
        assert build_mdns_label("", "_device-info._tcp.local.") == GENERIC_MDNS_LABEL


class TestMdnsDetector:
    """Tests for MdnsDetector without a real Zeroconf instance."""

    def test_handle_service_info_caches_every_ipv4_address(self):
        detector = MdnsDetector(zeroconf_factory=MagicMock)
        info = MockServiceInfo(["192.168.1.40", "192.168.1.41"], server="kitchen.local.")

        changed = detector.handle_service_info(
            "_sonos._tcp.local.", "Kitchen._sonos._tcp.local.", info
        )

        assert changed == ["192.168.1.40", "192.168.1.41"]
        assert detector.cache.get("192.168.1.41") == "Kitchen - Sonos Speaker (mDNS)"

    def test_longer_label_wins(self):
        detector = MdnsDetector(zeroconf_factory=MagicMock)
        detector.handle_service_info(
            "_airplay._tcp.local.", "Living Room._airplay._tcp.local.",
            MockServiceInfo(["192.168.1.42"])
        )
        changed = detector.handle_service_info(
            "_ssh._tcp.local.", "tv._ssh._tcp.local.", MockServiceInfo(["192.168.1.42"])
        )
        assert changed == []
        assert detector.cache.get("192.168.1.42") == "Living Room - AirPlay Device (mDNS)"

    def test_no_addresses(self):
        detector = MdnsDetector(zeroconf_factory=MagicMock)
        assert detector.handle_service_info("_http._tcp.local.", "x._http._tcp.local.",
                                            MockServiceInfo([])) == []

    def test_state_change_submits_resolve(self):
        detector = MdnsDetector(zeroconf_factory=MagicMock)
        detector._resolver = MagicMock()
        zc = MagicMock()

        detector._on_service_state_change(zc, "_hue._tcp.local.", "Hue._hue._tcp.local.",
                                          ServiceStateChange.Added)
        detector._on_service_state_change(zc, "_hue._tcp.local.", "Hue._hue._tcp.local.",
                                          ServiceStateChange.Removed)

        assert detector._resolver.submit.call_count == 1

    def test_resolve_feeds_cache(self):
        detector = MdnsDetector(zeroconf_factory=MagicMock)
        zc = MagicMock()
        zc.get_service_info.return_value = MockServiceInfo(["192.168.1.43"])

        detector._resolve(zc, "_hue._tcp.local.", "Bridge._hue._tcp.local.")

        assert detector.cache.get("192.168.1.43") == "Bridge - Philips Hue (mDNS)"

    def test_resolve_timeout(self):
        detector = MdnsDetector(zeroconf_factory=MagicMock)
        zc = MagicMock()
        zc.get_service_info.return_value = None
        detector._resolve(zc, "_hue._tcp.local.", "Bridge._hue._tcp.local.")
        assert len(detector.cache) == 0

    @patch("discovery.detectors.mdns.ServiceBrowser")
    def test_start_and_close(self, mock_browser):
        zeroconf = MagicMock()
        detector = MdnsDetector(zeroconf_factory=lambda: zeroconf, grace_seconds=0)

        assert detector.start_discovery()
        assert detector.state is DiscoveryState.LISTENING
        browse_args = mock_browser.call_args
        assert browse_args.args[0] is zeroconf
        assert "_ipp._tcp.local." in browse_args.args[1]

        detector.close()
        mock_browser.return_value.cancel.assert_called_once()
        zeroconf.close.assert_called_once()
        assert detector.state is DiscoveryState.CLOSED

    def test_zeroconf_failure_disables_detector(self):
        def broken():
            raise OSError("cannot bind 5353")

        detector = MdnsDetector(zeroconf_factory=broken, grace_seconds=0)
        assert detector.detect("192.168.1.44") is None
        assert detector.state is DiscoveryState.FAILED

    @patch("discovery.detectors.mdns.ServiceBrowser",
           side_effect=BadTypeInNameException("bad service type"))
    def test_browser_failure_disables_detector_and_closes_zeroconf(self, mock_browser):
        instances = []

        def factory():
            zeroconf = MagicMock()
            instances.append(zeroconf)
            return zeroconf

        detector = MdnsDetector(zeroconf_factory=factory, grace_seconds=0)
        for _ in range(3):
            assert detector.detect("192.168.1.44") is None

        assert detector.state is DiscoveryState.FAILED
        assert len(instances) == 1
        instances[0].close.assert_called_once()
        assert mock_browser.call_count == 1
