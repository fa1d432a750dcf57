"""Domain name normalization for values handed to external diagnostic commands.

The returned string is safe to pass as a single argv element: it contains no
whitespace, shell metacharacters or path separators.
"""

from __future__ import annotations

import re

import idna

from egressguard.errors import InvalidDomainError

MIN_DOMAIN_LENGTH = 3  # "a.b"
MAX_DOMAIN_LENGTH = 253  # RFC 1035/2181 practical maximum for the text form
MAX_LABEL_LENGTH = 63

_DOMAIN_CHAR_WHITELIST = re.compile(r"[a-z0-9._-]+")
_DOMAIN_SHAPE = re.compile(
    r"(?!-)(xn--)?[a-z0-9][a-z0-9-_]{0,61}[a-z0-9]?\."
    r"(xn--)?([a-z0-9\-]{1,61}|[a-z0-9-]{1,30}\.[a-z]{2,})",
    re.IGNORECASE,
)


def _to_ascii(domain: str) -> str:
    """UTS #46 map with STD3 rules, then punycode the labels that are not ASCII.

    ASCII labels are left to the checks below, so names such as
    ``r3---sn-abc.example.com`` survive the IDNA 2008 hyphen rule.
    """
    try:
        mapped = idna.uts46_remap(domain, std3_rules=True, transitional=False)
        labels = [
            label if label.isascii() else idna.alabel(label).decode("ascii")
            for label in mapped.split(".")
        ]
    except (idna.IDNAError, UnicodeError) as exc:
        raise InvalidDomainError() from exc
    return ".".join(labels).lower()


def _has_valid_length(domain: str) -> bool:
    return MIN_DOMAIN_LENGTH <= len(domain) <= MAX_DOMAIN_LENGTH


def normalize_and_validate(domain: str | None) -> str:
    """Trim, convert to ASCII (punycode) and lower-case ``domain``, then validate it.

    Raises ``InvalidDomainError`` with the same generic message for every
    kind of violation.
    """
    if domain is None:
        raise InvalidDomainError()

    trimmed = domain.strip()
    if not trimmed or not _has_valid_length(trimmed):
        raise InvalidDomainError()

    ascii_domain = _to_ascii(trimmed)
    if not _has_valid_length(ascii_domain):
        raise InvalidDomainError()

    if ascii_domain.startswith(".") or ascii_domain.endswith(".") or ".." in ascii_domain:
        raise InvalidDomainError()

    if not _DOMAIN_CHAR_WHITELIST.fullmatch(ascii_domain):
        raise InvalidDomainError()

    labels = ascii_domain.split(".")
    if len(labels) < 2:
        raise InvalidDomainError()
    for label in labels:
        if not label or len(label) > MAX_LABEL_LENGTH:
            raise InvalidDomainError()
        if label.startswith("-") or label.endswith("-"):
            raise InvalidDomainError()

    if not _DOMAIN_SHAPE.fullmatch(ascii_domain):
        raise InvalidDomainError()

    return ascii_domain
