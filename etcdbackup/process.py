# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Process execution for the external CLIs (etcdctl, systemctl, kubectl).

Adapters take a CommandRunner so tests can substitute a fake that records
calls instead of spawning processes.
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Sequence

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommandResult:
    """Exit status and decoded output of a finished command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[..., Awaitable[CommandResult]]


async def run_command(
    cmd: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """
    Run a command and wait for it to exit.

    Args:
        cmd: Executable and arguments
        env: Extra environment variables merged over os.environ
        timeout: Seconds before the process is killed

    Returns:
        CommandResult; a timed-out process reports returncode -1

    Raises:
        OSError: If the executable cannot be started (missing, not
            executable)
    """
    merged_env = os.environ.copy()
    if env:
        merged_env.update(env)

    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=merged_env,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("command_timed_out", command=cmd[0], timeout=timeout)
        return CommandResult(-1, "", f"Command timed out after {timeout}s")

    stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
    stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

    logger.debug("command_finished", command=cmd[0], returncode=proc.returncode)
    return CommandResult(proc.returncode or 0, stdout, stderr)
