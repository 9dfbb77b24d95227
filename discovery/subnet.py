"""Address enumeration and local subnet detection.

AddressRange yields the host addresses of one /24-style block. The local
subnet provider turns the "auto" setting into concrete subnet bases using
the host's active interfaces.
"""
import ipaddress
import socket
from typing import Iterator, List

import psutil

from config import ConfigurationError, get_logger

logger = get_logger(__name__)

AUTO_SUBNET = "auto"


def is_valid_ipv4(address: str) -> bool:
    """True for a dotted-quad IPv4 address."""
    try:
        ipaddress.IPv4Address(address)
    except (ipaddress.AddressValueError, ValueError):
        return False
    return address.count('.') == 3


def validate_subnet_base(subnet_base: str) -> str:
    """Check a three-octet base such as "192.168.1".

    Raises:
        ConfigurationError: If the base is not three octets in 0-255.
    """
    parts = subnet_base.split('.') if subnet_base else []
    if len(parts) != 3 or not all(p.isdigit() and 0 <= int(p) <= 255 for p in parts):
        raise ConfigurationError(
            "Subnet base must be three octets, e.g. 192.168.1",
            {"subnet_base": subnet_base}
        )
    return subnet_base


class AddressRange:
    """Lazy, restartable iterable over ``{base}.{start}`` .. ``{base}.{end}``.

    Example:
        >>> list(AddressRange("192.168.1", 1, 3))
        ['192.168.1.1', '192.168.1.2', '192.168.1.3']
    """

    def __init__(self, subnet_base: str, start_octet: int, end_octet: int):
        self.subnet_base = validate_subnet_base(subnet_base)
        if not (0 <= start_octet <= 255 and 0 <= end_octet <= 255):
            raise ConfigurationError(
                "Address range octets must be between 0 and 255",
                {"start_ip": start_octet, "end_ip": end_octet}
            )
        if start_octet > end_octet:
            raise ConfigurationError(
                "Address range start is after its end",
                {"start_ip": start_octet, "end_ip": end_octet}
            )
        self.start_octet = start_octet
        self.end_octet = end_octet

    def __iter__(self) -> Iterator[str]:
        for octet in range(self.start_octet, self.end_octet + 1):
            yield f"{self.subnet_base}.{octet}"

    def __len__(self) -> int:
        return self.end_octet - self.start_octet + 1

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str) or not is_valid_ipv4(address):
            return False
        base, last = address.rsplit('.', 1)
        return base == self.subnet_base and self.start_octet <= int(last) <= self.end_octet

    def __repr__(self) -> str:
        return f"AddressRange({self.subnet_base}.{self.start_octet}-{self.end_octet})"


class LocalSubnetProvider:
    """Resolves the subnet bases a sweep should cover."""

    def get_subnets(self, subnet_base: str = AUTO_SUBNET) -> List[str]:
        """Return subnet bases to sweep.

        An explicit base is validated and returned as-is. "auto" picks the
        first up, non-loopback, non-link-local IPv4 interface.

        Raises:
            ConfigurationError: If no usable interface exists in auto mode.
        """
        if subnet_base and subnet_base.lower() != AUTO_SUBNET:
            return [validate_subnet_base(subnet_base)]

        for iface, address in self._iter_ipv4_addresses():
            base = address.rsplit('.', 1)[0]
            logger.debug(f"Using interface {iface} ({address}) -> {base}.0/24")
            return [base]

        raise ConfigurationError(
            "Could not determine local subnet: no active IPv4 interface",
            {"subnet_base": subnet_base}
        )

    def _iter_ipv4_addresses(self) -> Iterator[tuple]:
        addrs = psutil.net_if_addrs()
        stats = psutil.net_if_stats()

        for iface, addr_list in addrs.items():
            if iface not in stats or not stats[iface].isup:
                continue
            for addr in addr_list:
                if addr.family != socket.AF_INET:
                    continue
                if addr.address.startswith('127.') or addr.address.startswith('169.254.'):
                    continue
                yield iface, addr.address
