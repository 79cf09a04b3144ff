"""Static project validation, metadata, and discovery.

Everything here reads the project directory only; no editor is needed.
Functions are blocking and are called through ``asyncio.to_thread`` by the
registry.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from editorlink.core.errors import InvalidTargetError
from editorlink.core.paths import normalize_target

logger = logging.getLogger(__name__)

ASSETS_DIR = "Assets"
SETTINGS_DIR = "ProjectSettings"
VERSION_FILE = "ProjectVersion.txt"
BUILD_SETTINGS_FILE = "EditorBuildSettings.asset"
SCENE_SUFFIX = ".unity"
UNKNOWN_VERSION = "unknown"

_EDITOR_VERSION_RE = re.compile(r"m_EditorVersion:\s*(.+)")
_BUILD_SCENE_RE = re.compile(r"^\s*-?\s*(enabled|path):\s*(.*?)\s*$")


@dataclass(frozen=True)
class SceneInfo:
    path: str
    name: str
    is_in_build: bool = False
    build_index: int | None = None
    last_modified: datetime | None = None


@dataclass(frozen=True)
class ProjectInfo:
    """Static metadata for one project directory."""

    path: str
    name: str
    editor_version: str
    scenes: tuple[SceneInfo, ...] = field(default_factory=tuple)
    last_modified: datetime | None = None


def project_problem(path: str | Path) -> str | None:
    """Return why *path* is not a project, or ``None`` when it is one."""
    root = Path(path)
    if not root.is_dir():
        return "directory does not exist"
    if not (root / ASSETS_DIR).is_dir():
        return f"missing {ASSETS_DIR}/ directory"
    if not (root / SETTINGS_DIR).is_dir():
        return f"missing {SETTINGS_DIR}/ directory"
    if not (root / SETTINGS_DIR / VERSION_FILE).is_file():
        return f"missing {SETTINGS_DIR}/{VERSION_FILE}"
    return None


def is_valid_project(path: str | Path) -> bool:
    """Whether *path* has the Assets/ProjectSettings layout of an editor project."""
    return project_problem(path) is None


def validate_project(path: str | Path) -> None:
    """Raise ``InvalidTargetError`` unless *path* is a project."""
    problem = project_problem(path)
    if problem is not None:
        raise InvalidTargetError(str(path), problem)


def read_editor_version(path: str | Path) -> str:
    """Return the editor version recorded in ProjectVersion.txt, or ``unknown``."""
    version_file = Path(path) / SETTINGS_DIR / VERSION_FILE
    try:
        content = version_file.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return UNKNOWN_VERSION
    match = _EDITOR_VERSION_RE.search(content)
    if match is None:
        return UNKNOWN_VERSION
    return match.group(1).strip() or UNKNOWN_VERSION


def _mtime(path: Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
    except OSError:
        return None


def read_build_scenes(path: str | Path) -> list[tuple[str, bool]]:
    """Return ``(scene_path, enabled)`` pairs from EditorBuildSettings.asset, in order."""
    settings = Path(path) / SETTINGS_DIR / BUILD_SETTINGS_FILE
    try:
        content = settings.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []

    scenes: list[tuple[str, bool]] = []
    enabled = True
    for line in content.splitlines():
        match = _BUILD_SCENE_RE.match(line)
        if match is None:
            continue
        key, value = match.groups()
        if key == "enabled":
            enabled = value == "1"
        elif value.endswith(SCENE_SUFFIX):
            scenes.append((value, enabled))
            enabled = True
    return scenes


def list_scenes(path: str | Path) -> list[SceneInfo]:
    """Return every scene under Assets/, annotated with its build-settings slot."""
    root = Path(path)
    build_index: dict[str, int] = {}
    for scene_path, enabled in read_build_scenes(root):
        if enabled:
            build_index.setdefault(scene_path, len(build_index))

    scenes: list[SceneInfo] = []
    for scene_file in sorted((root / ASSETS_DIR).rglob(f"*{SCENE_SUFFIX}")):
        if not scene_file.is_file():
            continue
        relative = scene_file.relative_to(root).as_posix()
        index = build_index.get(relative)
        scenes.append(
            SceneInfo(
                path=relative,
                name=scene_file.stem,
                is_in_build=index is not None,
                build_index=index,
                last_modified=_mtime(scene_file),
            )
        )
    return scenes


def read_project_info(path: str | Path) -> ProjectInfo:
    """Return static metadata for the project at *path*.

    Raises:
        InvalidTargetError: If *path* is not a project.
    """
    target = normalize_target(path)
    validate_project(target)
    root = Path(target)
    return ProjectInfo(
        path=target,
        name=root.name,
        editor_version=read_editor_version(root),
        scenes=tuple(list_scenes(root)),
        last_modified=_mtime(root),
    )


def discover_projects(search_root: str | Path, *, recursive: bool = False) -> list[str]:
    """Return normalized paths of projects under *search_root*.

    Only direct children are checked unless *recursive* is set. A missing or
    unreadable search root yields an empty list.
    """
    root = Path(normalize_target(search_root))
    if not root.is_dir():
        logger.debug("Search root %s is not a directory", root)
        return []

    found: list[str] = []
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            children = sorted(child for child in directory.iterdir() if child.is_dir())
        except OSError as exc:
            logger.debug("Skipping unreadable directory %s: %s", directory, exc)
            continue
        for child in children:
            if is_valid_project(child):
                found.append(str(child))
            elif recursive and not child.is_symlink():
                pending.append(child)
    return sorted(found)


__all__ = [
    "UNKNOWN_VERSION",
    "ProjectInfo",
    "SceneInfo",
    "discover_projects",
    "is_valid_project",
    "list_scenes",
    "project_problem",
    "read_build_scenes",
    "read_editor_version",
    "read_project_info",
    "validate_project",
]
