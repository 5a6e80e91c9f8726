"""
Network endpoints (address + port) for PeerLink.

Endpoints compare by packed address bytes, most significant byte first,
then by port. For example, in ascending order:

    10.152.68.24:2992
    10.154.33.158:2994
    10.154.33.158:4486
    160.98.210.159:22047

IPv4 and IPv6 endpoints may be ordered against each other (the 4-byte
IPv4 address sorts before any 16-byte IPv6 address sharing its prefix)
but are never equal, including IPv4-mapped IPv6 forms.
"""

import ipaddress
from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True, order=True)
class Endpoint:
    """Immutable (address, port) pair identifying one side of a connection."""
    address: bytes
    port: int
    host: str = field(default="", compare=False)

    def __post_init__(self):
        if len(self.address) not in (4, 16):
            raise ValueError(f"Address must be 4 or 16 bytes, got {len(self.address)}")
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"Port out of range: {self.port}")
        if not self.host:
            object.__setattr__(self, "host", str(ipaddress.ip_address(self.address)))

    @classmethod
    def from_ip(cls, host: str, port: int) -> "Endpoint":
        """
        Build an endpoint from a numeric IPv4/IPv6 literal.

        Raises:
            ValueError: If host is not an IP address literal
        """
        # Scope IDs ("fe80::1%eth0") are not part of the address bytes
        ip = ipaddress.ip_address(host.split("%", 1)[0])
        return cls(ip.packed, int(port), str(ip))

    @classmethod
    def from_sockaddr(cls, addr: tuple) -> "Endpoint":
        """Build an endpoint from a recvfrom() address (2- or 4-tuple)."""
        return cls.from_ip(addr[0], addr[1])

    @property
    def is_ipv6(self) -> bool:
        return len(self.address) == 16

    def as_sockaddr(self) -> Tuple[str, int]:
        return (self.host, self.port)

    def __str__(self):
        if self.is_ipv6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"
