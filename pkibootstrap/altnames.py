# pkibootstrap/altnames.py
from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _to_ip(value: Union[str, IPAddress]) -> IPAddress:
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    return ipaddress.ip_address(str(value).strip())


@dataclass
class AltNames:
    """Subject alternative names burned into a certificate."""

    dns_names: List[str] = field(default_factory=list)
    ips: List[IPAddress] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.dns_names = list(self.dns_names or [])
        self.ips = [_to_ip(ip) for ip in (self.ips or [])]

    @classmethod
    def of(cls, dns_names: Iterable[str] = (), ips: Iterable[Union[str, IPAddress]] = ()) -> "AltNames":
        return cls(dns_names=list(dns_names), ips=list(ips))


def remove_duplicate_alt_names(alt_names: Optional[AltNames]) -> AltNames:
    """
    Return a deduplicated copy of ``alt_names``.

    DNS names come back sorted; IP addresses keep their first-seen order,
    compared by canonical string form. Existing consumers expect exactly this
    SAN ordering in the encoded certificate. Applying this twice yields the
    same value.
    """
    if alt_names is None:
        return AltNames()

    dns_names = sorted(set(alt_names.dns_names))

    seen = set()
    ips: List[IPAddress] = []
    for ip in alt_names.ips:
        key = str(ip)
        if key not in seen:
            seen.add(key)
            ips.append(ip)

    return AltNames(dns_names=dns_names, ips=ips)
