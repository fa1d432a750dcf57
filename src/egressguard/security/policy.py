"""Outbound request policy: domain whitelist, host/CIDR blacklists and port policy."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from egressguard.config import URLValidationSettings
from egressguard.errors import PolicyConfigurationError

logger = structlog.get_logger(__name__)

_IPV4_ALL_ONES = 0xFFFFFFFF
_SETTING_NAME = "url_validation.blacklist.ip_ranges"


@dataclass(frozen=True)
class Ipv4Cidr:
    """An IPv4 range held as unsigned 32-bit integers."""

    network: int
    mask_bits: int
    mask: int

    @classmethod
    def parse(cls, cidr: str) -> Ipv4Cidr:
        """Parse ``a.b.c.d/n``. Host bits below the prefix are masked off."""
        address, sep, prefix = cidr.strip().partition("/")
        if not sep or "/" in prefix:
            raise PolicyConfigurationError(f"Invalid CIDR in {_SETTING_NAME}: {cidr!r}")
        try:
            bits = int(prefix)
        except ValueError as exc:
            raise PolicyConfigurationError(f"Invalid CIDR in {_SETTING_NAME}: {cidr!r}") from exc
        if not 0 <= bits <= 32:
            raise PolicyConfigurationError(f"Invalid CIDR in {_SETTING_NAME}: {cidr!r}")

        try:
            base = ipaddress.ip_address(address.strip())
        except ValueError as exc:
            raise PolicyConfigurationError(f"Invalid CIDR in {_SETTING_NAME}: {cidr!r}") from exc
        if not isinstance(base, ipaddress.IPv4Address):
            raise PolicyConfigurationError(
                f"Only IPv4 CIDRs are supported in {_SETTING_NAME}: {cidr!r}"
            )

        mask = 0 if bits == 0 else (_IPV4_ALL_ONES << (32 - bits)) & _IPV4_ALL_ONES
        return cls(network=int(base) & mask, mask_bits=bits, mask=mask)

    def contains(self, address: int | ipaddress.IPv4Address) -> bool:
        return (int(address) & self.mask) == self.network

    def __str__(self) -> str:
        return f"{ipaddress.IPv4Address(self.network)}/{self.mask_bits}"


def _normalize_names(entries: Iterable[str | None]) -> frozenset[str]:
    out = set()
    for entry in entries:
        if entry is None:
            continue
        name = entry.strip().lower()
        if name:
            out.add(name)
    return frozenset(out)


def parse_blocked_cidrs(entries: Iterable[str | None]) -> tuple[Ipv4Cidr, ...]:
    """Parse configured CIDR strings, skipping blanks. Any bad entry is fatal."""
    return tuple(
        Ipv4Cidr.parse(entry) for entry in entries if entry is not None and entry.strip()
    )


@dataclass(frozen=True)
class PolicyConfiguration:
    """Read-only outbound policy handed to the URL guard at construction.

    An empty ``allowed_domains`` fails closed. An empty ``allowed_ports``
    allows any explicit port; an unspecified port is always allowed.
    """

    allowed_domains: frozenset[str] = field(default_factory=frozenset)
    blocked_hosts: frozenset[str] = field(default_factory=frozenset)
    blocked_cidrs: tuple[Ipv4Cidr, ...] = ()
    allowed_ports: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        *,
        allowed_domains: Iterable[str | None] = (),
        blocked_hosts: Iterable[str | None] = (),
        blocked_ip_ranges: Iterable[str | None] = (),
        allowed_ports: Iterable[int] = (),
    ) -> PolicyConfiguration:
        ports = frozenset(allowed_ports)
        bad_ports = sorted(p for p in ports if not 0 < p <= 65535)
        if bad_ports:
            raise PolicyConfigurationError(
                f"Invalid port(s) in url_validation.allowed_ports: {bad_ports}"
            )
        return cls(
            allowed_domains=_normalize_names(allowed_domains),
            blocked_hosts=_normalize_names(blocked_hosts),
            blocked_cidrs=parse_blocked_cidrs(blocked_ip_ranges),
            allowed_ports=ports,
        )

    @classmethod
    def from_settings(cls, settings: URLValidationSettings) -> PolicyConfiguration:
        policy = cls.build(
            allowed_domains=settings.whitelist.domains,
            blocked_hosts=settings.blacklist.hosts,
            blocked_ip_ranges=settings.blacklist.ip_ranges,
            allowed_ports=settings.allowed_ports,
        )
        logger.info(
            "outbound_policy_loaded",
            allowed_domains=len(policy.allowed_domains),
            blocked_hosts=len(policy.blocked_hosts),
            blocked_cidrs=len(policy.blocked_cidrs),
            allowed_ports=sorted(policy.allowed_ports),
        )
        return policy

    def is_blocked_host(self, host: str) -> bool:
        return host in self.blocked_hosts

    def is_whitelisted_domain(self, host: str) -> bool:
        if host == "localhost":
            return False
        return any(host == domain or host.endswith("." + domain) for domain in self.allowed_domains)

    def is_allowed_port(self, port: int | None) -> bool:
        if port is None or not self.allowed_ports:
            return True
        return port in self.allowed_ports

    def is_blocked_by_cidr(self, address: ipaddress.IPv4Address) -> bool:
        return any(cidr.contains(address) for cidr in self.blocked_cidrs)
