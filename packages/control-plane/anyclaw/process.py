"""
Bounded subprocess execution.

Every external command (openclaw, systemctl) goes through ``run_command``.
A command that exceeds its timeout is reported as failed; the child is
left alone, the unit's restart policy is the safety net.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from anyclaw.models import CommandResult

logger = logging.getLogger(__name__)

CommandRunner = Callable[[Sequence[str], float], Awaitable[CommandResult]]


def describe_failure(stdout: str, stderr: str, fallback: str) -> str:
    """Pick the most specific diagnostic: stderr, then stdout, then fallback."""
    return stderr.strip() or stdout.strip() or fallback


async def run_command(argv: Sequence[str], timeout: float) -> CommandResult:
    cmd = list(argv)
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning("Failed to spawn %s: %s", cmd[0], e)
        return CommandResult(success=False, error=str(e))

    try:
        stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Command timed out after %ss: %s", timeout, " ".join(cmd))
        return CommandResult(
            success=False, error=f"Command timed out after {timeout}s: {' '.join(cmd)}"
        )

    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")

    if proc.returncode != 0:
        return CommandResult(
            success=False,
            output=stdout.strip(),
            error=describe_failure(
                stdout, stderr, f"{cmd[0]} exited with status {proc.returncode}"
            ),
            returncode=proc.returncode,
        )

    return CommandResult(success=True, output=stdout.strip(), returncode=0)
