"""Structural classification of resolved IP addresses."""

from __future__ import annotations

import ipaddress
from enum import Flag, auto

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

# RFC 1918. ipaddress.is_private is much broader (documentation, benchmarking,
# reserved blocks), so site-local is spelled out.
_IPV4_SITE_LOCAL = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)
_IPV6_UNIQUE_LOCAL = ipaddress.IPv6Network("fc00::/7")


class AddressClass(Flag):
    NONE = 0
    ANY_LOCAL = auto()
    LOOPBACK = auto()
    LINK_LOCAL = auto()
    SITE_LOCAL = auto()
    MULTICAST = auto()
    UNIQUE_LOCAL = auto()


BLOCKED_CLASSES = (
    AddressClass.ANY_LOCAL
    | AddressClass.LOOPBACK
    | AddressClass.LINK_LOCAL
    | AddressClass.SITE_LOCAL
    | AddressClass.MULTICAST
    | AddressClass.UNIQUE_LOCAL
)


def effective_address(address: IPAddress) -> IPAddress:
    """Unwrap IPv4-mapped IPv6 (``::ffff:a.b.c.d``) to the IPv4 address it carries."""
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def classify(address: IPAddress) -> AddressClass:
    address = effective_address(address)
    flags = AddressClass.NONE
    if address.is_unspecified:
        flags |= AddressClass.ANY_LOCAL
    if address.is_loopback:
        flags |= AddressClass.LOOPBACK
    if address.is_link_local:
        flags |= AddressClass.LINK_LOCAL
    if address.is_multicast:
        flags |= AddressClass.MULTICAST

    if isinstance(address, ipaddress.IPv4Address):
        if any(address in net for net in _IPV4_SITE_LOCAL):
            flags |= AddressClass.SITE_LOCAL
    else:
        if address.is_site_local:
            flags |= AddressClass.SITE_LOCAL
        if address in _IPV6_UNIQUE_LOCAL:
            flags |= AddressClass.UNIQUE_LOCAL
    return flags


def is_blocked_address(address: IPAddress) -> bool:
    return bool(classify(address) & BLOCKED_CLASSES)
