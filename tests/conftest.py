from __future__ import annotations

import ipaddress
import os
import socket

import pytest

os.environ["EGRESSGUARD_ENV"] = "test"  # Prevents loading dev/staging/prod profile overlays


class FixedResolver:
    """DNS stand-in: answers from a table, IP literals resolve to themselves."""

    def __init__(self, table: dict[str, list[str]] | None = None) -> None:
        self.table = table or {}
        self.calls: list[str] = []

    def __call__(self, host: str):
        self.calls.append(host)
        try:
            return [ipaddress.ip_address(host)]
        except ValueError:
            pass
        # DNS names are case-insensitive.
        answers = self.table.get(host.lower())
        if answers is None:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return [ipaddress.ip_address(a) for a in answers]


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    from egressguard.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    from egressguard.config import get_settings

    return get_settings()


@pytest.fixture
def resolver():
    return FixedResolver(
        {
            "example.com": ["93.184.216.34"],
            "api.example.com": ["93.184.216.35", "2606:2800:220:1:248:1893:25c8:1946"],
            "internal.example.com": ["127.0.0.1"],
            "rebind.example.com": ["93.184.216.34", "10.0.0.5"],
        }
    )


@pytest.fixture
def url_settings():
    from egressguard.config import BlacklistSettings, URLValidationSettings, WhitelistSettings

    return URLValidationSettings(
        whitelist=WhitelistSettings(domains=["example.com"]),
        blacklist=BlacklistSettings(
            ip_ranges=["127.0.0.0/8", "10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"],
            hosts=["169.254.169.254", "metadata.google.internal"],
        ),
        allowed_ports=[80, 443],
    )


@pytest.fixture
def validator(url_settings, resolver):
    from egressguard.security.url_guard import URLValidator

    return URLValidator.from_settings(url_settings, resolver=resolver)


@pytest.fixture
def make_resolver():
    return FixedResolver
