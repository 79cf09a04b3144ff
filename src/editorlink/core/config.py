"""Configuration loader for editorlink."""

from __future__ import annotations

import asyncio
import os
import tempfile
import tomllib
from pathlib import Path
from typing import Literal

import tomlkit
from pydantic import BaseModel, Field, field_validator

from editorlink.core.paths import get_config_path


def atomic_write(path: Path, content: str) -> None:
    """Write file atomically to avoid partial/corrupt writes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        Path(tmp_path).replace(path)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


type FramingLiteral = Literal["length_prefixed", "raw_json"]
type ReconnectStrategyLiteral = Literal["exponential", "fixed"]

FRAMING_VALUES = frozenset({"length_prefixed", "raw_json"})
RECONNECT_STRATEGY_VALUES = frozenset({"exponential", "fixed"})

MAX_FRAME_BYTES = 4 * 1024 * 1024


class LinkConfig(BaseModel):
    """Rendezvous naming and stream settings for the editor link."""

    pipe_prefix: str = Field(
        default="unity-mcp",
        description="Prefix of the rendezvous name; must match the editor plugin",
    )
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    framing: FramingLiteral = Field(
        default="length_prefixed",
        description="Message framing: length_prefixed (default) or raw_json (legacy plugin)",
    )
    max_frame_bytes: int = Field(default=MAX_FRAME_BYTES, gt=0)

    @field_validator("framing", mode="before")
    @classmethod
    def validate_framing(cls, value: object) -> str:
        """Coerce unknown framing names to length_prefixed."""
        match value:
            case str() as framing if framing in FRAMING_VALUES:
                return framing
            case _:
                pass
        return "length_prefixed"


class ReconnectConfig(BaseModel):
    """Reconnect schedule for dropped editor links."""

    strategy: ReconnectStrategyLiteral = Field(
        default="exponential",
        description="exponential (default) or fixed (constant initial_delay_seconds)",
    )
    initial_delay_seconds: float = Field(default=5.0, gt=0)
    max_delay_seconds: float = Field(default=60.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    watch_absent_peers: bool = Field(
        default=True,
        description="Keep retrying the rendezvous for projects whose editor is not running",
    )

    @field_validator("strategy", mode="before")
    @classmethod
    def validate_strategy(cls, value: object) -> str:
        """Coerce unknown strategies to exponential."""
        match value:
            case str() as strategy if strategy in RECONNECT_STRATEGY_VALUES:
                return strategy
            case _:
                pass
        return "exponential"


class RequestConfig(BaseModel):
    """Deadlines for commands sent to the editor."""

    default_timeout_seconds: float = Field(default=10.0, gt=0)
    probe_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Deadline for the liveness ping sent right after connecting",
    )


class HealthConfig(BaseModel):
    """Background health sweep settings."""

    enabled: bool = Field(default=True)
    interval_seconds: float = Field(default=30.0, gt=0)


class LocatorConfig(BaseModel):
    """Editor process detection settings."""

    executable_names: list[str] = Field(
        default_factory=lambda: ["Unity", "Unity.exe"],
        description="Executable names identifying editor processes (case-insensitive)",
    )
    project_flag: str = Field(default="-projectPath")
    timeout_seconds: float = Field(default=5.0, gt=0)


class EditorLinkConfig(BaseModel):
    """Root configuration model."""

    link: LinkConfig = Field(default_factory=LinkConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    requests: RequestConfig = Field(default_factory=RequestConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    locator: LocatorConfig = Field(default_factory=LocatorConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> EditorLinkConfig:
        """Load configuration from TOML file or use defaults."""
        if config_path is None:
            config_path = get_config_path()

        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls.model_validate(data)

        return cls()

    def to_toml(self) -> str:
        """Render the configuration as a TOML document."""
        doc = tomlkit.document()
        for section, model in (
            ("link", self.link),
            ("reconnect", self.reconnect),
            ("requests", self.requests),
            ("health", self.health),
            ("locator", self.locator),
        ):
            table = tomlkit.table()
            for key, value in model.model_dump().items():
                if value is not None:
                    table[key] = value
            doc[section] = table
        return tomlkit.dumps(doc)

    async def save(self, path: Path) -> None:
        """Serialize current config to TOML file.

        Args:
            path: Path to write config file (created if missing)
        """
        await asyncio.to_thread(atomic_write, path, self.to_toml())


__all__ = [
    "MAX_FRAME_BYTES",
    "EditorLinkConfig",
    "HealthConfig",
    "LinkConfig",
    "LocatorConfig",
    "ReconnectConfig",
    "RequestConfig",
    "atomic_write",
]
