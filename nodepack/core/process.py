"""Package manager process helper."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

import structlog

from nodepack.exceptions import SpawnError

log = structlog.get_logger(__name__)


@dataclass
class ProcessOutput:
    stdout: str
    stderr: str


def platform_command(name: str) -> str:
    """Return the executable name for *name* on this platform (``npm`` -> ``npm.cmd``)."""
    if sys.platform.startswith("win"):
        return f"{name}.cmd"
    return name


async def spawn_process(command: str, args: list[str], cwd: str | Path) -> ProcessOutput:
    """Run *command* with *args* in *cwd* and capture its output.

    Raises ``SpawnError`` when the process cannot be started or exits non-zero.
    The error carries the captured stdout and stderr.
    """
    cmd = [command, *args]
    log.debug("process.spawn", cmd=" ".join(cmd), cwd=str(cwd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise SpawnError(f"{command} could not be started: {exc}") from exc

    stdout_b, stderr_b = await proc.communicate()
    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        raise SpawnError(
            f"{' '.join(cmd)} failed with code {proc.returncode}",
            stdout=stdout,
            stderr=stderr,
            returncode=proc.returncode,
        )
    return ProcessOutput(stdout=stdout, stderr=stderr)
