"""Data model for discovered devices."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional


@dataclass
class NetworkDevice:
    """A device on the network, keyed by its IPv4 address.

    ``type`` carries the classification label including its method suffix,
    e.g. "Ubuntu Linux (SSH)". It is empty until a detector matches.
    ``response_time_ms`` is None while the device is offline.
    """
    address: str
    name: str = ""
    type: str = ""
    mac_address: str = ""
    is_online: bool = False
    last_seen: datetime = field(default_factory=datetime.now)
    response_time_ms: Optional[float] = None
    first_seen: datetime = field(default_factory=datetime.now)

    @property
    def last_octet(self) -> str:
        return self.address.rsplit('.', 1)[-1]

    @property
    def display_name(self) -> str:
        """Best display name: resolved name, then type, then address."""
        if self.name:
            return self.name
        if self.type:
            return self.type
        return self.address

    def copy(self) -> 'NetworkDevice':
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "name": self.name,
            "type": self.type,
            "mac_address": self.mac_address,
            "is_online": self.is_online,
            "last_seen": self.last_seen.isoformat(),
            "response_time_ms": self.response_time_ms,
            "first_seen": self.first_seen.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'NetworkDevice':
        now = datetime.now()
        last_seen = data.get("last_seen")
        first_seen = data.get("first_seen")
        return cls(
            address=data["address"],
            name=data.get("name", ""),
            type=data.get("type", ""),
            mac_address=data.get("mac_address", ""),
            is_online=data.get("is_online", False),
            last_seen=datetime.fromisoformat(last_seen) if last_seen else now,
            response_time_ms=data.get("response_time_ms"),
            first_seen=datetime.fromisoformat(first_seen) if first_seen else now,
        )


def placeholder_name(address: str) -> str:
    """Name used when no hostname could be resolved, e.g. DEVICE_42."""
    return f"DEVICE_{address.rsplit('.', 1)[-1]}"
