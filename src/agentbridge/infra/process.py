"""Subprocess primitives shared by the locator, registration and orchestrator.

Commands are always spawned from an argument vector — never through a
shell — with stdout/stderr redirected.  Termination goes through
``kill_process_tree`` so a misbehaving binary cannot leave grandchildren
behind.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

OUTPUT_ENCODING = "utf-8"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished command."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def decode_output(data: bytes) -> str:
    return data.decode(OUTPUT_ENCODING, errors="replace")


def kill_process_tree(pid: int) -> int:
    """Kill *pid* and every descendant; return how many were signalled.

    The descendant list is captured before the root is killed, since
    orphans get re-parented and become unreachable from it afterwards.
    """
    try:
        root = psutil.Process(pid)
        victims = root.children(recursive=True)
    except psutil.NoSuchProcess:
        return 0
    victims.insert(0, root)

    killed = 0
    for proc in victims:
        try:
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.warning("Not allowed to kill pid %s", proc.pid)
    return killed


async def terminate(
    process: asyncio.subprocess.Process, timeout: timedelta
) -> None:
    """Kill *process* with its whole tree and reap it (bounded wait)."""
    if process.returncode is not None:
        return
    killed = kill_process_tree(process.pid)
    logger.debug("Killed process tree of pid %s (%d processes)", process.pid, killed)
    try:
        async with asyncio.timeout(timeout.total_seconds()):
            await process.wait()
    except TimeoutError:
        logger.warning(
            "Process %s did not exit within %s after kill", process.pid, timeout
        )


async def run_command(
    argv: Sequence[str],
    *,
    timeout: timedelta | None = None,
    cwd: Path | None = None,
) -> CommandResult:
    """Run *argv* to completion and capture its output.

    Raises:
        OSError: the executable could not be launched.
        TimeoutError: *timeout* elapsed; the process tree has been killed.
        asyncio.CancelledError: the calling task was cancelled; the process
            tree has been killed.
    """
    logger.debug("Running: %s", " ".join(argv))
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    try:
        async with asyncio.timeout(timeout.total_seconds() if timeout else None):
            stdout, stderr = await process.communicate()
    except (TimeoutError, asyncio.CancelledError):
        await terminate(process, timedelta(seconds=5))
        raise

    result = CommandResult(
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=decode_output(stdout),
        stderr=decode_output(stderr),
    )
    if not result.ok:
        logger.warning(
            "Command %s exited with code %s: %s",
            argv[0],
            result.exit_code,
            result.stderr.strip(),
        )
    return result
