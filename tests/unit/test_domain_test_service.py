from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from egressguard.config import DomainTestSettings
from egressguard.errors import InvalidDomainError, UnableToTestDomainError
from egressguard.services.domain_test import DomainTestService

_EXEC = "egressguard.services.domain_test.asyncio.create_subprocess_exec"


def _fake_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.returncode = returncode
    process.wait = AsyncMock(return_value=returncode)
    process.kill = MagicMock()
    return process


class TestBuildPingCommand:
    def test_argument_vector_without_shell(self):
        command = DomainTestService().build_ping_command("example.com")
        assert command == ["ping", "-c", "1", "example.com"]
        assert "sh" not in command
        assert "bash" not in command

    def test_uses_configured_executable_and_count(self):
        service = DomainTestService(DomainTestSettings(executable="/usr/bin/ping", count=3))
        assert service.build_ping_command("example.com") == ["/usr/bin/ping", "-c", "3", "example.com"]


class TestDomainTest:
    @pytest.mark.asyncio
    async def test_returns_stdout(self):
        process = _fake_process(stdout=b"1 packets transmitted, 1 received\n")
        with patch(_EXEC, AsyncMock(return_value=process)) as mock_exec:
            output = await DomainTestService().test_domain("  Example.COM ")

        assert output == "1 packets transmitted, 1 received\n"
        args, kwargs = mock_exec.call_args
        assert args == ("ping", "-c", "1", "example.com")
        assert "shell" not in kwargs

    @pytest.mark.asyncio
    async def test_invalid_domain_never_spawns(self):
        with patch(_EXEC, AsyncMock()) as mock_exec:
            with pytest.raises(InvalidDomainError):
                await DomainTestService().test_domain("example.com; rm -rf /")
        mock_exec.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_zero_exit_hides_stderr(self):
        process = _fake_process(stderr=b"ping: unknown host example.com", returncode=2)
        with patch(_EXEC, AsyncMock(return_value=process)):
            with pytest.raises(UnableToTestDomainError) as excinfo:
                await DomainTestService().test_domain("example.com")
        assert excinfo.value.message == "Unable to test domain"
        assert "unknown host" not in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_timeout_kills_and_reaps(self):
        async def _hang():
            await asyncio.sleep(10)

        process = _fake_process()
        process.communicate = _hang
        service = DomainTestService(DomainTestSettings(timeout_seconds=0.05))
        with patch(_EXEC, AsyncMock(return_value=process)):
            with pytest.raises(UnableToTestDomainError, match="Timed out"):
                await service.test_domain("example.com")
        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        with patch(_EXEC, AsyncMock(side_effect=FileNotFoundError("ping"))):
            with pytest.raises(UnableToTestDomainError, match="Unable to test domain"):
                await DomainTestService().test_domain("example.com")
