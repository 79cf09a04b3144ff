"""Pytest fixtures for editorlink tests."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

from editorlink.core.adapters.process import ProcessResult
from editorlink.core.config import EditorLinkConfig
from editorlink.core.locator import ProcessLocator
from tests.helpers.projects import create_project

_TEST_BASE_DIR = Path(tempfile.mkdtemp(prefix="editorlink-tests-"))
os.environ["EDITORLINK_CONFIG_DIR"] = str(_TEST_BASE_DIR / "config")

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture
def short_tmp() -> Generator[Path]:
    """Create a short temp directory for Unix socket paths (macOS 104-byte limit)."""
    d = tempfile.mkdtemp(prefix="el-", dir="/tmp")
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def rendezvous_dir(short_tmp: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point rendezvous sockets at an isolated directory."""
    monkeypatch.setenv("EDITORLINK_RENDEZVOUS_DIR", str(short_tmp))
    return short_tmp


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Factory for on-disk projects under ``tmp_path``."""

    def _make(name: str = "Game", **kwargs: object) -> Path:
        return create_project(tmp_path / name, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def quiet_locator() -> ProcessLocator:
    """Locator whose process listing is always empty."""

    async def _runner(*args: str, timeout: float | None = None) -> ProcessResult:
        del args, timeout
        return ProcessResult(returncode=0, stdout=b"  PID ARGS\n", stderr=b"")

    return ProcessLocator(platform="linux", runner=_runner)


@pytest.fixture
def fast_config() -> EditorLinkConfig:
    """Config with short deadlines and a fixed, quick reconnect schedule."""
    return EditorLinkConfig.model_validate(
        {
            "link": {"connect_timeout_seconds": 1.0},
            "reconnect": {
                "strategy": "fixed",
                "initial_delay_seconds": 0.05,
                "watch_absent_peers": False,
            },
            "requests": {"default_timeout_seconds": 2.0, "probe_timeout_seconds": 1.0},
            "health": {"enabled": False},
        }
    )
