"""Tests for command library."""

import asyncio
from typing import Any

import pytest

from tm_local.command import Command, run
from tm_local.exceptions import CommandException, RuntimeStartError


async def test_command() -> None:
    """Test stdout parsing of a command."""
    result = await run(Command(["echo", "Hello"]))
    assert result == "Hello\n"


async def test_failed_command() -> None:
    """Test a failing command."""
    with pytest.raises(CommandException, match="return code 1"):
        await run(Command(["/bin/false"]))


async def test_failed_command_exception_type() -> None:
    """Test a failing command raises the requested exception."""
    with pytest.raises(RuntimeStartError):
        await run(Command(["/bin/false"], exc=RuntimeStartError))


async def test_allowed_return_code() -> None:
    """Test a non-zero return code allowed to indicate success."""
    assert await run(Command(["/bin/false"], retcodes=[1])) == ""


async def test_timeout() -> None:
    """Test a command that does not finish in time."""
    with pytest.raises(CommandException, match="timed out"):
        await run(Command(["sleep", "5"], timeout=0.1))


async def test_timeout_reaps_process(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that a command killed on timeout is waited for."""
    procs: list[asyncio.subprocess.Process] = []
    create = asyncio.create_subprocess_exec

    async def record(*args: Any, **kwargs: Any) -> asyncio.subprocess.Process:
        proc = await create(*args, **kwargs)
        procs.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", record)
    with pytest.raises(CommandException, match="timed out"):
        await run(Command(["sleep", "5"], timeout=0.1))
    assert len(procs) == 1
    assert procs[0].returncode is not None


async def test_env() -> None:
    """Test additional environment variables."""
    result = await run(
        Command(["sh", "-c", "echo $GREETING"], env={"GREETING": "Hello"})
    )
    assert result == "Hello\n"


async def test_redacted_arguments() -> None:
    """Test that redacted arguments are hidden from errors."""
    cmd = Command(
        ["sh", "-c", "exit 2", "TOKEN=secret"], redact=frozenset(["TOKEN=secret"])
    )
    assert "secret" not in str(cmd)
    assert "<redacted>" in str(cmd)
    with pytest.raises(CommandException) as exc_info:
        await run(cmd)
    assert "secret" not in str(exc_info.value)
