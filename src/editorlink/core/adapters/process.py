"""Subprocess capture used to query host process listings."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Captured result of a subprocess execution."""

    returncode: int
    stdout: bytes
    stderr: bytes

    def stdout_text(self) -> str:
        """Decode stdout as UTF-8 with replacement."""
        return self.stdout.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


async def _communicate(
    process: asyncio.subprocess.Process,
    *,
    timeout: float | None = None,
) -> tuple[bytes, bytes]:
    try:
        if timeout is None:
            stdout, stderr = await process.communicate()
        else:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        with contextlib.suppress(ProcessLookupError):
            await process.communicate()
        raise

    return stdout or b"", stderr or b""


async def run_exec_capture(
    executable: str,
    *args: str,
    timeout: float | None = None,
) -> ProcessResult:
    """Run *executable* without a shell and capture stdout/stderr.

    Raises:
        OSError: If the executable cannot be spawned (``FileNotFoundError`` when missing).
        TimeoutError: If the process outlives *timeout*; it is killed first.
    """
    started = time.monotonic()
    process = await asyncio.create_subprocess_exec(
        executable,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await _communicate(process, timeout=timeout)
    result = ProcessResult(
        returncode=process.returncode if process.returncode is not None else 1,
        stdout=stdout,
        stderr=stderr,
    )
    logger.debug(
        "%s exited rc=%d in %.0fms (%d bytes)",
        executable,
        result.returncode,
        (time.monotonic() - started) * 1000,
        len(stdout),
    )
    return result


__all__ = ["ProcessResult", "run_exec_capture"]
