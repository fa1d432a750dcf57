"""Liveness endpoint with a content-free summary of the outbound policy."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from egressguard.dependencies import get_url_validator_dep
from egressguard.schemas import HealthResponse, PolicySummary
from egressguard.security.url_guard import URLValidator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1")


@router.get("/health", response_model=HealthResponse)
async def health_check(validator: URLValidator = Depends(get_url_validator_dep)) -> HealthResponse:
    policy = validator.policy
    return HealthResponse(
        status="ok" if policy.allowed_domains else "degraded",
        policy=PolicySummary(
            allowed_domains=len(policy.allowed_domains),
            blocked_hosts=len(policy.blocked_hosts),
            blocked_cidrs=len(policy.blocked_cidrs),
            allowed_ports=sorted(policy.allowed_ports),
        ),
    )
