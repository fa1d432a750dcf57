"""Domain test endpoint: ping a user-supplied domain after normalization."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from egressguard.dependencies import get_domain_test_dep
from egressguard.errors import InvalidDomainError
from egressguard.schemas import CheckResult, DomainTestRequest
from egressguard.services.domain_test import DomainTestService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1")


@router.post("/test-domain", response_model=CheckResult)
async def handle_test_domain(
    request: DomainTestRequest,
    service: DomainTestService = Depends(get_domain_test_dep),
) -> CheckResult:
    logger.info("domain_test_requested")
    try:
        output = await service.test_domain(request.domain_name)
    except InvalidDomainError:
        # The raw input may carry injection payloads; keep it out of INFO logs.
        logger.info("domain_test_invalid_input")
        raise
    return CheckResult(output=output)
