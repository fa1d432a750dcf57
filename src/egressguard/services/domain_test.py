"""Run a network diagnostic (ping) against a validated domain."""

from __future__ import annotations

import asyncio

import structlog

from egressguard.config import DomainTestSettings
from egressguard.errors import UnableToTestDomainError
from egressguard.security.domain import normalize_and_validate

logger = structlog.get_logger(__name__)


class DomainTestService:
    """Ping a domain without ever going through a shell.

    The domain is normalized first, then passed as one discrete argv element.
    The process is killed and reaped if it outlives ``timeout_seconds``.
    """

    def __init__(self, settings: DomainTestSettings | None = None) -> None:
        self._settings = settings or DomainTestSettings()

    def build_ping_command(self, domain: str) -> list[str]:
        return [self._settings.executable, "-c", str(self._settings.count), domain]

    async def test_domain(self, domain_name: str | None) -> str:
        domain = normalize_and_validate(domain_name)
        command = self.build_ping_command(domain)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError:
            logger.exception("domain_test_spawn_failed", domain=domain)
            raise UnableToTestDomainError("Unable to test domain")

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._settings.timeout_seconds
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(
                "domain_test_timed_out",
                domain=domain,
                timeout_seconds=self._settings.timeout_seconds,
            )
            raise UnableToTestDomainError("Timed out pinging domain")

        if process.returncode != 0:
            # Detail stays server-side.
            logger.warning(
                "domain_test_failed",
                domain=domain,
                exit_code=process.returncode,
                stderr=stderr.decode("utf-8", errors="replace"),
            )
            raise UnableToTestDomainError("Unable to test domain")

        return stdout.decode("utf-8", errors="replace")
