from __future__ import annotations

import sys

import pytest

from editorlink.core.adapters.process import run_exec_capture

_POSIX_ONLY = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX sh")


@_POSIX_ONLY
@pytest.mark.asyncio
async def test_run_exec_capture_collects_output() -> None:
    result = await run_exec_capture("sh", "-c", "echo out; echo err >&2; exit 3")
    assert result.returncode == 3
    assert result.stdout_text() == "out\n"
    assert result.stderr_text() == "err\n"


@_POSIX_ONLY
@pytest.mark.asyncio
async def test_run_exec_capture_missing_executable() -> None:
    with pytest.raises(FileNotFoundError):
        await run_exec_capture("definitely-not-a-real-binary-xyz")


@_POSIX_ONLY
@pytest.mark.asyncio
async def test_run_exec_capture_times_out() -> None:
    with pytest.raises(TimeoutError):
        await run_exec_capture("sh", "-c", "sleep 5", timeout=0.1)
