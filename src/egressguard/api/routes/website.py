"""Website test endpoint: fetch a user-supplied URL through the outbound guard."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from egressguard.dependencies import get_website_test_dep
from egressguard.schemas import CheckResult, WebsiteTestRequest
from egressguard.services.website_test import WebsiteTestService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1")


@router.post("/test-website", response_model=CheckResult)
async def handle_test_website(
    request: WebsiteTestRequest,
    service: WebsiteTestService = Depends(get_website_test_dep),
) -> CheckResult:
    logger.info("website_test_requested")
    output = await service.test_website(request)
    return CheckResult(output=output)
