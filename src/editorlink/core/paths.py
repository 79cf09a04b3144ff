"""Path helpers for editorlink configuration and rendezvous endpoints."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir

_POSIX_RENDEZVOUS_DIR = "/tmp"


def get_config_dir() -> Path:
    """Get the config directory for editorlink (config.toml)."""
    override = os.environ.get("EDITORLINK_CONFIG_DIR")
    if override:
        return Path(override).resolve()
    return Path(user_config_dir("editorlink"))


def get_config_path() -> Path:
    """Get the path to the main config file."""
    return get_config_dir() / "config.toml"


def get_rendezvous_dir() -> Path:
    """Get the directory holding editor domain sockets on POSIX hosts.

    The editor plugin binds its socket directly under ``/tmp``; the override
    exists so tests can run a fake editor in an isolated directory.
    """
    override = os.environ.get("EDITORLINK_RENDEZVOUS_DIR")
    if override:
        return Path(override)
    return Path(_POSIX_RENDEZVOUS_DIR)


def normalize_target(target: str | os.PathLike[str]) -> str:
    """Return the canonical string form of a project path used as a registry key.

    The path is expanded and made absolute lexically (``..`` and trailing
    separators collapse) but symlinks are kept, so the key, and the
    rendezvous name hashed from it, match the path the editor was opened with.
    """
    return os.path.abspath(os.path.expanduser(os.fspath(target)))


__all__ = [
    "get_config_dir",
    "get_config_path",
    "get_rendezvous_dir",
    "normalize_target",
]
