"""Thread-safe table of discovered devices keyed by address.

All reads return copies so callers never observe a half-updated device.
"""
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from discovery.models import NetworkDevice


class DeviceTable:
    def __init__(self):
        self._devices: Dict[str, NetworkDevice] = {}
        self._lock = threading.Lock()

    def upsert_online(self, address: str, response_time_ms: Optional[float],
                      type_label: Optional[str] = None, name: Optional[str] = None,
                      mac_address: Optional[str] = None,
                      seen_at: Optional[datetime] = None) -> Tuple[NetworkDevice, bool]:
        """Record a successful probe.

        Empty classification, name or MAC values leave the stored ones alone.

        Returns:
            (copy of the device, whether it is new or its online state or
            type changed)
        """
        seen_at = seen_at or datetime.now()
        with self._lock:
            device = self._devices.get(address)
            is_new = device is None
            if is_new:
                device = NetworkDevice(address=address, first_seen=seen_at)
                self._devices[address] = device

            changed = is_new or not device.is_online
            device.is_online = True
            device.last_seen = seen_at
            device.response_time_ms = response_time_ms
            if type_label and type_label != device.type:
                device.type = type_label
                changed = True
            if name:
                device.name = name
            if mac_address:
                device.mac_address = mac_address
            return device.copy(), changed

    def upsert_offline(self, address: str, name: Optional[str] = None) -> Tuple[NetworkDevice, bool]:
        """Record an explicit probe of an address that did not answer.

        Creates the entry if needed. Returns (copy, changed) like upsert_online.
        """
        with self._lock:
            device = self._devices.get(address)
            if device is None:
                device = NetworkDevice(address=address, name=name or "", is_online=False)
                self._devices[address] = device
                return device.copy(), True
            changed = device.is_online
            device.is_online = False
            device.response_time_ms = None
            return device.copy(), changed

    def mark_offline(self, address: str) -> Optional[NetworkDevice]:
        """Flag a known device offline, keeping its name and type.

        Returns:
            A copy if the device went from online to offline, else None.
        """
        with self._lock:
            device = self._devices.get(address)
            if device is None or not device.is_online:
                if device is not None:
                    device.response_time_ms = None
                return None
            device.is_online = False
            device.response_time_ms = None
            return device.copy()

    def get(self, address: str) -> Optional[NetworkDevice]:
        with self._lock:
            device = self._devices.get(address)
            return device.copy() if device else None

    def __contains__(self, address: str) -> bool:
        with self._lock:
            return address in self._devices

    def snapshot(self) -> List[NetworkDevice]:
        """All devices ordered by last octet."""
        with self._lock:
            devices = [d.copy() for d in self._devices.values()]
        return sorted(devices, key=_address_key)

    def remove(self, address: str) -> bool:
        with self._lock:
            return self._devices.pop(address, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._devices.clear()

    def counts(self) -> Tuple[int, int]:
        """(online, total)"""
        with self._lock:
            online = sum(1 for d in self._devices.values() if d.is_online)
            return online, len(self._devices)

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)


def _address_key(device: NetworkDevice) -> Tuple[int, ...]:
    try:
        return tuple(int(part) for part in device.address.split('.'))
    except ValueError:
        return (999,)
