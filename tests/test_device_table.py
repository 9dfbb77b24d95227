"""Tests for discovery/device_table.py and discovery/models.py."""
import threading
from datetime import datetime

from discovery.device_table import DeviceTable
from discovery.models import NetworkDevice, placeholder_name


class TestNetworkDevice:
    """Tests for the NetworkDevice model."""

    def test_defaults(self):
        device = NetworkDevice(address="192.168.1.5")
        assert device.type == ""
        assert not device.is_online
        assert device.response_time_ms is None

    def test_last_octet(self):
        assert NetworkDevice(address="10.0.0.42").last_octet == "42"

    def test_display_name_precedence(self):
        device = NetworkDevice(address="10.0.0.42")
        assert device.display_name == "10.0.0.42"
        device.type = "Linux/Unix (SSH)"
        assert device.display_name == "Linux/Unix (SSH)"
        device.name = "NAS (office)"
        assert device.display_name == "NAS (office)"

    def test_copy_is_independent(self):
        device = NetworkDevice(address="10.0.0.42", name="A")
        clone = device.copy()
        clone.name = "B"
        assert device.name == "A"

    def test_dict_round_trip(self):
        device = NetworkDevice(address="10.0.0.42", name="NAS", type="Linux/Unix (SSH)",
                               mac_address="AA:BB:CC:DD:EE:FF", is_online=True,
                               response_time_ms=3.5)
        restored = NetworkDevice.from_dict(device.to_dict())
        assert restored == device

    def test_placeholder_name(self):
        assert placeholder_name("192.168.1.42") == "DEVICE_42"


class TestDeviceTable:
    """Tests for DeviceTable upserts and transitions."""

    def test_new_device_is_a_change(self):
        table = DeviceTable()
        device, changed = table.upsert_online("192.168.1.5", 2.0, type_label="Unknown (HTTP)")
        assert changed
        assert device.is_online
        assert device.type == "Unknown (HTTP)"

    def test_repeat_upsert_is_not_a_change(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.5", 2.0, type_label="Unknown (HTTP)")
        device, changed = table.upsert_online("192.168.1.5", 3.0, type_label="Unknown (HTTP)")
        assert not changed
        assert device.response_time_ms == 3.0

    def test_type_change_is_a_change(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.5", 2.0, type_label="Unknown (HTTP)")
        device, changed = table.upsert_online("192.168.1.5", 2.0, type_label="Linux Server (HTTP)")
        assert changed
        assert device.type == "Linux Server (HTTP)"

    def test_empty_values_keep_stored_ones(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.5", 2.0, type_label="TV (UPnP)", name="TV",
                            mac_address="AA:BB:CC:DD:EE:FF")
        device, changed = table.upsert_online("192.168.1.5", 2.0)
        assert not changed
        assert device.type == "TV (UPnP)"
        assert device.name == "TV"
        assert device.mac_address == "AA:BB:CC:DD:EE:FF"

    def test_mark_offline_keeps_identity(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.5", 2.0, type_label="TV (UPnP)", name="TV")
        device = table.mark_offline("192.168.1.5")
        assert device is not None
        assert not device.is_online
        assert device.response_time_ms is None
        assert device.type == "TV (UPnP)"
        assert device.name == "TV"

    def test_mark_offline_only_reports_transition(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.5", 2.0)
        assert table.mark_offline("192.168.1.5") is not None
        assert table.mark_offline("192.168.1.5") is None

    def test_mark_offline_unknown_address(self):
        table = DeviceTable()
        assert table.mark_offline("192.168.1.9") is None
        assert "192.168.1.9" not in table

    def test_back_online_is_a_change(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.5", 2.0)
        table.mark_offline("192.168.1.5")
        _, changed = table.upsert_online("192.168.1.5", 2.0)
        assert changed

    def test_upsert_offline_creates_entry(self):
        table = DeviceTable()
        device, changed = table.upsert_offline("192.168.1.9", name="DEVICE_9")
        assert changed
        assert not device.is_online
        assert device.name == "DEVICE_9"
        _, changed = table.upsert_offline("192.168.1.9")
        assert not changed

    def test_first_seen_preserved(self):
        table = DeviceTable()
        first = datetime(2024, 1, 1, 12, 0)
        table.upsert_online("192.168.1.5", 2.0, seen_at=first)
        device, _ = table.upsert_online("192.168.1.5", 2.0, seen_at=datetime(2024, 1, 1, 13, 0))
        assert device.first_seen == first
        assert device.last_seen == datetime(2024, 1, 1, 13, 0)

    def test_snapshot_sorted_numerically(self):
        table = DeviceTable()
        for address in ("192.168.1.100", "192.168.1.9", "192.168.1.20"):
            table.upsert_online(address, 1.0)
        assert [d.address for d in table.snapshot()] == [
            "192.168.1.9", "192.168.1.20", "192.168.1.100"
        ]

    def test_snapshot_returns_copies(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.5", 2.0, name="TV")
        table.snapshot()[0].name = "changed"
        assert table.get("192.168.1.5").name == "TV"

    def test_counts_remove_clear(self):
        table = DeviceTable()
        table.upsert_online("192.168.1.1", 1.0)
        table.upsert_online("192.168.1.2", 1.0)
        table.mark_offline("192.168.1.2")
        assert table.counts() == (1, 2)
        assert table.remove("192.168.1.1")
        assert not table.remove("192.168.1.1")
        table.clear()
        assert len(table) == 0

    def test_concurrent_upserts(self):
        table = DeviceTable()

        def worker(octet):
            for _ in range(50):
                table.upsert_online(f"10.0.0.{octet}", 1.0)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(1, 21)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert table.counts() == (20, 20)
