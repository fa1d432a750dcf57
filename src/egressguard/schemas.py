"""Pydantic v2 request/response models for the egressguard API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DomainTestRequest(BaseModel):
    domain_name: str | None = Field(default=None, max_length=1024)


class WebsiteTestRequest(BaseModel):
    url: str | None = Field(default=None, max_length=8192)
    custom_header_key: str | None = Field(default=None, max_length=256)
    custom_header_value: str | None = Field(default=None, max_length=8192)


class CheckResult(BaseModel):
    output: str


class PolicySummary(BaseModel):
    """Counts only; policy contents are not exposed."""

    allowed_domains: int = 0
    blocked_hosts: int = 0
    blocked_cidrs: int = 0
    allowed_ports: list[int] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    policy: PolicySummary = Field(default_factory=PolicySummary)
