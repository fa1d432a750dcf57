"""egressguard API application factory.

Creates a FastAPI application with:
- Lifespan management (outbound HTTP client created on startup, closed on shutdown)
- Request logging middleware with request_id propagation
- Structured error handling with generic messages for rejected input
"""

from __future__ import annotations

import time
import uuid as uuid_mod
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from egressguard.config import Settings, get_settings
from egressguard.dependencies import Resources
from egressguard.errors import register_exception_handlers
from egressguard.observability.logging_config import configure_logging
from egressguard.security.url_guard import HostResolver

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Lifespan — initialise shared resources on startup, release on shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    resources: Resources = app.state.resources
    policy = resources.url_validator.policy  # type: ignore[union-attr]

    logger.info(
        "egressguard API starting (environment=%s, whitelisted domains=%d, allowed ports=%s)",
        resources.settings.environment,
        len(policy.allowed_domains),
        sorted(policy.allowed_ports) or "any",
    )

    await resources.startup()

    yield  # ---- application is running ----

    logger.info("egressguard API shutting down")
    await resources.shutdown()


# ---------------------------------------------------------------------------
# Middleware — request logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(
            "X-Request-ID",
            str(uuid_mod.uuid4())[:8],
        )
        # Store on request.state for downstream use (error handler)
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        elapsed = (time.perf_counter() - start) * 1000

        logger.info(
            "%s %s %d %.0fms request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    resolver: HostResolver | None = None,
) -> FastAPI:
    """Create a fully configured FastAPI application.

    Parameters
    ----------
    settings:
        Optional settings override. If *None*, ``get_settings()`` is used.
    resolver:
        Optional DNS resolver for the URL guard (tests bind a fixed table).

    Raises ``PolicyConfigurationError`` if the outbound policy is invalid.
    """
    settings = settings or get_settings()
    configure_logging(json_output=settings.json_logs, log_level=settings.log_level)

    app = FastAPI(
        title="egressguard API",
        description="Outbound request guard: SSRF-safe website and domain tests",
        version="0.1.0",
        lifespan=_lifespan,
    )

    app.state.resources = Resources(settings=settings, resolver=resolver)

    # --- Exception handlers (structured error responses) ---
    register_exception_handlers(app, debug=settings.debug)

    app.add_middleware(RequestLoggingMiddleware)

    # --- Routes ---
    from egressguard.api.routes.domain import router as domain_router
    from egressguard.api.routes.health import router as health_router
    from egressguard.api.routes.website import router as website_router

    app.include_router(health_router)
    app.include_router(domain_router)
    app.include_router(website_router)

    return app


def run() -> None:
    uvicorn.run("egressguard.api.main:create_app", factory=True, host="0.0.0.0", port=8000)
