"""Command execution channel.

Every device and SDK operation is expressed as one primitive: run a shell
command, capture stdout/stderr and either return or raise. Tool wrappers
(``AndroidController``, ``SimctlController``) build the command strings; this
module only runs them.

The channel is a small protocol so tests can substitute an in-memory fake.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """Base class for command channel failures."""

    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(message)
        self.command = command


class CommandExitError(CommandError):
    """Raised when a command exits with a non-zero return code."""

    def __init__(self, *, command: str, returncode: int, stdout: str = "", stderr: str = "") -> None:
        super().__init__(
            f"command failed (rc={returncode}): {command}\n"
            f"stdout: {stdout.strip()}\n"
            f"stderr: {stderr.strip()}",
            command=command,
        )
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    """Raised when a command does not finish within its timeout."""

    def __init__(self, *, command: str, timeout_s: float) -> None:
        super().__init__(f"command timed out after {timeout_s:g}s: {command}", command=command)
        self.timeout_s = timeout_s


@dataclass(frozen=True)
class CommandResult:
    command: str
    stdout: str
    stderr: str
    returncode: int

    def ok(self) -> bool:
        return self.returncode == 0


class CommandChannel(Protocol):
    async def execute(self, command: str, *, timeout_s: float | None = None) -> CommandResult:
        ...

    async def spawn(self, argv: Sequence[str]) -> int:
        ...


class ShellCommandChannel:
    """Run commands through the host shell with asyncio subprocesses."""

    def __init__(
        self,
        *,
        default_timeout_s: float | None = 120.0,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._default_timeout_s = default_timeout_s
        self._env = dict(env) if env is not None else None

    def _merged_env(self) -> Optional[dict[str, str]]:
        if self._env is None:
            return None
        merged = dict(os.environ)
        merged.update(self._env)
        return merged

    async def execute(self, command: str, *, timeout_s: float | None = None) -> CommandResult:
        timeout = self._default_timeout_s if timeout_s is None else float(timeout_s)
        logger.debug("exec: %s", command)
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self._merged_env(),
        )
        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise CommandTimeoutError(command=command, timeout_s=float(timeout or 0)) from None

        result = CommandResult(
            command=command,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
            returncode=int(proc.returncode or 0),
        )
        if not result.ok():
            raise CommandExitError(
                command=command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    async def spawn(self, argv: Sequence[str]) -> int:
        """Start a detached background process and return its pid.

        Used for long-lived processes such as the Android emulator whose
        lifecycle is managed through their own tools afterwards.
        """

        logger.debug("spawn: %s", " ".join(argv))
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            env=self._merged_env(),
            start_new_session=True,
        )
        return int(proc.pid)
