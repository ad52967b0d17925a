"""Library for issuing commands using asyncio and returning the result."""

import asyncio
import logging
import shlex
import subprocess
from dataclasses import dataclass
import os

from .context import current_component
from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 8
_SEM = asyncio.Semaphore(_CONCURRENCY)


# No public API
__all__: list[str] = []


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    retcodes: list[int] | None = None
    """Non-zero error codes that are allowed to indicate success."""

    env: dict[str, str] | None = None
    """Additional environment variables for the subprocess."""

    timeout: float | None = None
    """Seconds to wait for the command, unbounded by default."""

    redact: frozenset[str] = frozenset()
    """Argument values hidden from log and error messages."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join(
            shlex.quote("<redacted>" if arg in self.redact else arg)
            for arg in self.cmd
        )

    def __str__(self) -> str:
        """Render as a debug string."""
        return self.string

    async def run(self) -> str:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command for %s: %s", current_component() or "-", self)
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        proc = await asyncio.create_subprocess_exec(
            *self.cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
        try:
            out, err = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError as err:
            proc.kill()
            await proc.wait()
            raise self.exc(f"Command '{self}' timed out") from err
        if proc.returncode:
            if self.retcodes and proc.returncode in self.retcodes:
                return out.decode("utf-8")
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8"))
            if err:
                errors.append(err.decode("utf-8"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out.decode("utf-8")


async def run(cmd: Command) -> str:
    """Run the specified command and return stdout.

    The number of commands running at once is bounded.
    """
    async with _SEM:
        return await cmd.run()
