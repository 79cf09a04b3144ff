from __future__ import annotations

import tomllib
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from editorlink.core.config import EditorLinkConfig, LinkConfig, ReconnectConfig, atomic_write

if TYPE_CHECKING:
    from pathlib import Path


def test_defaults_match_plugin_conventions() -> None:
    config = EditorLinkConfig()
    assert config.link.pipe_prefix == "unity-mcp"
    assert config.link.framing == "length_prefixed"
    assert config.reconnect.strategy == "exponential"
    assert config.reconnect.initial_delay_seconds == 5.0
    assert config.reconnect.max_delay_seconds == 60.0
    assert config.requests.default_timeout_seconds == 10.0
    assert config.locator.executable_names == ["Unity", "Unity.exe"]


def test_unknown_enum_values_are_coerced() -> None:
    assert LinkConfig(framing="xml").framing == "length_prefixed"  # type: ignore[arg-type]
    assert ReconnectConfig(strategy="linear").strategy == "exponential"  # type: ignore[arg-type]


def test_invalid_numbers_are_rejected() -> None:
    with pytest.raises(ValidationError):
        EditorLinkConfig.model_validate({"requests": {"default_timeout_seconds": 0}})


def test_load_missing_file_returns_defaults(tmp_path: Path) -> None:
    assert EditorLinkConfig.load(tmp_path / "missing.toml") == EditorLinkConfig()


def test_load_reads_partial_file(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('[link]\nframing = "raw_json"\n\n[health]\nenabled = false\n')
    config = EditorLinkConfig.load(path)
    assert config.link.framing == "raw_json"
    assert config.health.enabled is False
    assert config.reconnect.strategy == "exponential"


@pytest.mark.asyncio
async def test_save_writes_loadable_toml(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.toml"
    config = EditorLinkConfig.model_validate({"link": {"pipe_prefix": "custom"}})
    await config.save(path)

    data = tomllib.loads(path.read_text())
    assert data["link"]["pipe_prefix"] == "custom"
    assert EditorLinkConfig.load(path) == config


def test_atomic_write_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "out.toml"
    atomic_write(target, "a = 1\n")
    atomic_write(target, "a = 2\n")
    assert target.read_text() == "a = 2\n"
    assert [p.name for p in tmp_path.iterdir()] == ["out.toml"]
