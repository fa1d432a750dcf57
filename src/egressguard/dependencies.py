"""FastAPI dependency injection for egressguard.

Shared resources (policy, validators, HTTP client) are created once in the
application lifespan and injected via ``Depends()`` into route handlers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
import structlog
from fastapi import Request

from egressguard.config import Settings, get_settings
from egressguard.security.url_guard import HostResolver, URLValidator
from egressguard.services.domain_test import DomainTestService
from egressguard.services.website_test import WebsiteTestService, build_http_client

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Resource container — holds all shared, long-lived resources
# ---------------------------------------------------------------------------


@dataclass
class Resources:
    """Container for application-level shared resources.

    ``resolver`` and ``http_client`` may be supplied up front (tests);
    otherwise they are built from settings.
    """

    settings: Settings = field(default_factory=get_settings)
    resolver: HostResolver | None = None
    http_client: httpx.AsyncClient | None = None
    url_validator: URLValidator | None = None
    website_test: WebsiteTestService | None = None
    domain_test: DomainTestService | None = None

    def __post_init__(self) -> None:
        # Policy errors (bad CIDR, bad port) must stop the app from starting.
        s = self.settings
        self.url_validator = URLValidator.from_settings(s.url_validation, resolver=self.resolver)
        self.domain_test = DomainTestService(s.domain_test)

    async def startup(self) -> None:
        logger.info("Initialising shared resources")
        if self.http_client is None:
            self.http_client = build_http_client(self.settings.http_client)
        self.website_test = WebsiteTestService(
            self.url_validator,
            self.http_client,
            max_body_bytes=self.settings.http_client.max_response_bytes,
        )
        logger.info("All shared resources initialised")

    async def shutdown(self) -> None:
        logger.info("Shutting down shared resources")
        if self.http_client is not None and not self.http_client.is_closed:
            await self.http_client.aclose()
        logger.info("All shared resources released")


# ---------------------------------------------------------------------------
# FastAPI Depends() helpers
# ---------------------------------------------------------------------------


def get_resources(request: Request) -> Resources:
    return request.app.state.resources


def get_url_validator_dep(request: Request) -> URLValidator:
    return get_resources(request).url_validator  # type: ignore[return-value]


def get_website_test_dep(request: Request) -> WebsiteTestService:
    resources = get_resources(request)
    if resources.website_test is None:
        raise RuntimeError("Resources not initialised. Run the application lifespan first.")
    return resources.website_test


def get_domain_test_dep(request: Request) -> DomainTestService:
    return get_resources(request).domain_test  # type: ignore[return-value]
