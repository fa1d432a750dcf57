"""SSRF protection: validate user-supplied URLs before any outbound request.

The guard runs a fixed pipeline and stops at the first failing stage:

    syntax -> protocol -> credentials -> host -> host blacklist
           -> domain whitelist -> port -> DNS -> resolved-address policy

Whitelisting a *name* says nothing about the *address* it resolves to at
request time, so every resolved address is classified on every call
(DNS rebinding defense). Results are never cached.
"""

from __future__ import annotations

import ipaddress
import re
import socket
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import urlsplit

import structlog

from egressguard.config import URLValidationSettings
from egressguard.errors import GENERIC_INVALID_URL_MESSAGE, InvalidURLError
from egressguard.security.addresses import IPAddress, effective_address, is_blocked_address
from egressguard.security.policy import PolicyConfiguration

logger = structlog.get_logger(__name__)

HostResolver = Callable[[str], Sequence[IPAddress]]

_ALLOWED_SCHEMES = frozenset({"http", "https"})
# Whitespace, control characters and backslashes are never valid in a URL we fetch.
_FORBIDDEN_URL_CHARS = re.compile(r"[\x00-\x20\x7f\\]")

_resolver_pool = ThreadPoolExecutor(max_workers=16, thread_name_prefix="egressguard-dns")


class DenialReason(StrEnum):
    MALFORMED_URL = "MALFORMED_URL"
    DISALLOWED_PROTOCOL = "DISALLOWED_PROTOCOL"
    DISALLOWED_PORT = "DISALLOWED_PORT"
    DISALLOWED_HOST = "DISALLOWED_HOST"
    DISALLOWED_DOMAIN = "DISALLOWED_DOMAIN"
    DISALLOWED_IP = "DISALLOWED_IP"
    UNRESOLVABLE_HOST = "UNRESOLVABLE_HOST"


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a URL check.

    ``reason`` is internal (logs, metrics, control flow). Anything shown to
    the requester must use ``public_message``, which is identical for every
    denial.
    """

    reason: DenialReason | None = None

    @property
    def allowed(self) -> bool:
        return self.reason is None

    @property
    def public_message(self) -> str:
        return "" if self.allowed else GENERIC_INVALID_URL_MESSAGE

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = ValidationOutcome()


@dataclass(frozen=True)
class ParsedUrl:
    scheme: str
    host: str
    port: int | None
    user_info: str | None


def parse_url(raw_url: str) -> ParsedUrl | None:
    """Split a URL into the parts the guard inspects, or ``None`` if it is not a URL.

    ``host`` keeps its original case; IPv6 literal brackets are removed.
    """
    text = raw_url.strip()
    if not text or _FORBIDDEN_URL_CHARS.search(text):
        return None
    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme:
        return None

    user_info, at, host_port = parts.netloc.rpartition("@")
    if host_port.startswith("["):
        host = host_port[1 : host_port.find("]")]
    else:
        host = host_port.partition(":")[0]

    return ParsedUrl(
        scheme=parts.scheme,
        host=host,
        port=port,
        user_info=user_info if at else None,
    )


class SystemResolver:
    """Resolve a host to all of its A/AAAA addresses with a wall-clock timeout.

    ``getaddrinfo`` cannot be interrupted, so it runs on a worker thread and
    the caller stops waiting after ``timeout`` seconds. A timeout surfaces as
    ``TimeoutError``; lookup failures as ``socket.gaierror``.
    """

    def __init__(self, timeout: float = 5.0, executor: ThreadPoolExecutor | None = None) -> None:
        self._timeout = timeout
        self._executor = executor or _resolver_pool

    def __call__(self, host: str) -> list[IPAddress]:
        future = self._executor.submit(
            socket.getaddrinfo, host, None, proto=socket.IPPROTO_TCP
        )
        try:
            infos = future.result(timeout=self._timeout)
        except TimeoutError:
            future.cancel()
            raise TimeoutError(f"DNS resolution timed out after {self._timeout}s") from None

        addresses: list[IPAddress] = []
        for _family, _type, _proto, _canonname, sockaddr in infos:
            ip = ipaddress.ip_address(str(sockaddr[0]).partition("%")[0])
            if ip not in addresses:
                addresses.append(ip)
        return addresses


class URLValidator:
    """Decide whether an outbound request to a user-supplied URL may proceed."""

    def __init__(self, policy: PolicyConfiguration, resolver: HostResolver | None = None) -> None:
        self._policy = policy
        self._resolver: HostResolver = resolver or SystemResolver()

    @classmethod
    def from_settings(
        cls, settings: URLValidationSettings, resolver: HostResolver | None = None
    ) -> URLValidator:
        policy = PolicyConfiguration.from_settings(settings)
        return cls(policy, resolver or SystemResolver(timeout=settings.dns_timeout_seconds))

    @property
    def policy(self) -> PolicyConfiguration:
        return self._policy

    def validate(self, raw_url: str | None) -> ValidationOutcome:
        if raw_url is None:
            return self._deny(DenialReason.MALFORMED_URL)

        parsed = parse_url(raw_url)
        if parsed is None:
            return self._deny(DenialReason.MALFORMED_URL)

        if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
            return self._deny(DenialReason.DISALLOWED_PROTOCOL)

        # http://trusted.example@attacker.example and friends
        if parsed.user_info is not None:
            return self._deny(DenialReason.MALFORMED_URL)

        if not parsed.host.strip():
            return self._deny(DenialReason.MALFORMED_URL)

        host = parsed.host.lower()

        if self._policy.is_blocked_host(host):
            return self._deny(DenialReason.DISALLOWED_HOST, host=host)

        if not self._policy.is_whitelisted_domain(host):
            return self._deny(DenialReason.DISALLOWED_DOMAIN, host=host)

        if not self._policy.is_allowed_port(parsed.port):
            return self._deny(DenialReason.DISALLOWED_PORT, host=host, port=parsed.port)

        try:
            addresses = self._resolver(parsed.host)
        except (OSError, ValueError) as exc:
            return self._deny(DenialReason.UNRESOLVABLE_HOST, host=host, error=type(exc).__name__)
        if not addresses:
            return self._deny(DenialReason.UNRESOLVABLE_HOST, host=host)

        for address in addresses:
            if self._is_blocked(address):
                return self._deny(DenialReason.DISALLOWED_IP, host=host)

        logger.debug("url_allowed", host=host)
        return ALLOWED

    def ensure_allowed(self, raw_url: str | None) -> None:
        """Raise ``InvalidURLError`` unless ``raw_url`` passes ``validate``."""
        outcome = self.validate(raw_url)
        if outcome.reason is not None:
            raise InvalidURLError(outcome.reason)

    def _is_blocked(self, address: IPAddress) -> bool:
        if is_blocked_address(address):
            return True
        address = effective_address(address)
        if isinstance(address, ipaddress.IPv4Address):
            return self._policy.is_blocked_by_cidr(address)
        return False

    @staticmethod
    def _deny(reason: DenialReason, **context: object) -> ValidationOutcome:
        logger.warning("url_blocked", reason=reason.value, **context)
        return ValidationOutcome(reason=reason)
