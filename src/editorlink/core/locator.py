"""Locate running editor processes and the projects they have open.

The host's process listing is parsed as text: ``ps`` on POSIX, a PowerShell
CIM query rendered as CSV on Windows. Only rows whose executable is a known
editor binary and whose command line carries a project flag are reported.
"""

from __future__ import annotations

import csv
import io
import logging
import re
import sys
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from editorlink.core.adapters.process import run_exec_capture
from editorlink.core.config import LocatorConfig
from editorlink.core.errors import LocateError
from editorlink.core.paths import normalize_target

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from editorlink.core.adapters.process import ProcessResult

    CommandRunner = Callable[..., Awaitable[ProcessResult]]

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE_NAMES = ("Unity", "Unity.exe")
DEFAULT_PROJECT_FLAG = "-projectPath"

PS_COMMAND = ("ps", "-A", "-ww", "-o", "pid,args")
POWERSHELL_QUERY = (
    "Get-CimInstance Win32_Process | Select-Object ProcessId,CommandLine | "
    "ConvertTo-Csv -NoTypeInformation"
)
POWERSHELL_COMMAND = (
    "powershell",
    "-NoProfile",
    "-NonInteractive",
    "-Command",
    POWERSHELL_QUERY,
)


@dataclass(frozen=True)
class PeerProcess:
    """One running editor process with a project open."""

    pid: int
    command_line: str
    target: str


@lru_cache(maxsize=8)
def _project_pattern(flag: str) -> re.Pattern[str]:
    return re.compile(
        rf'{re.escape(flag)}\s+"?([^"]+?)"?(?:\s+-|$)',
        re.IGNORECASE,
    )


def extract_project_path(command_line: str, flag: str = DEFAULT_PROJECT_FLAG) -> str | None:
    """Return the project path passed with *flag*, or ``None`` when absent."""
    match = _project_pattern(flag).search(command_line.strip())
    if match is None:
        return None
    path = match.group(1).strip()
    return path or None


def _executable_of(command_line: str) -> str:
    text = command_line.strip()
    if text.startswith('"'):
        end = text.find('"', 1)
        executable = text[1:end] if end > 0 else text[1:]
    else:
        cut = text.find(" -")
        executable = text if cut < 0 else text[:cut]
    return re.split(r"[\\/]", executable.strip())[-1]


def is_editor_command(command_line: str, executable_names: Iterable[str]) -> bool:
    """Whether *command_line* launches one of *executable_names* (case-insensitive)."""
    name = _executable_of(command_line).casefold()
    return any(name == candidate.casefold() for candidate in executable_names)


def _to_process(
    pid_text: str,
    command_line: str,
    executable_names: Iterable[str],
    flag: str,
) -> PeerProcess | None:
    pid_text = pid_text.strip()
    if not pid_text.isdigit() or not is_editor_command(command_line, executable_names):
        return None
    target = extract_project_path(command_line, flag)
    if target is None:
        return None
    return PeerProcess(pid=int(pid_text), command_line=command_line.strip(), target=target)


def parse_ps_output(
    text: str,
    executable_names: Iterable[str] = DEFAULT_EXECUTABLE_NAMES,
    flag: str = DEFAULT_PROJECT_FLAG,
) -> list[PeerProcess]:
    """Parse ``ps -o pid,args`` output into editor processes.

    Header rows, blank lines and rows without a numeric pid are skipped.
    """
    names = tuple(executable_names)
    processes: list[PeerProcess] = []
    for line in text.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) < 2:
            continue
        process = _to_process(parts[0], parts[1], names, flag)
        if process is not None:
            processes.append(process)
    return processes


def parse_csv_output(
    text: str,
    executable_names: Iterable[str] = DEFAULT_EXECUTABLE_NAMES,
    flag: str = DEFAULT_PROJECT_FLAG,
) -> list[PeerProcess]:
    """Parse PowerShell ``ConvertTo-Csv`` output with ProcessId/CommandLine columns."""
    names = tuple(executable_names)
    lines = [line for line in text.splitlines() if line.strip() and not line.startswith("#")]
    processes: list[PeerProcess] = []
    reader = csv.DictReader(io.StringIO("\n".join(lines)))
    try:
        for row in reader:
            process = _to_process(
                row.get("ProcessId") or "",
                row.get("CommandLine") or "",
                names,
                flag,
            )
            if process is not None:
                processes.append(process)
    except csv.Error as exc:
        logger.debug("Stopped parsing process CSV at line %d: %s", reader.line_num, exc)
    return processes


class ProcessLocator:
    """Enumerates editor processes on this host."""

    def __init__(
        self,
        config: LocatorConfig | None = None,
        *,
        platform: str | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self._config = config or LocatorConfig()
        self._platform = platform or sys.platform
        self._runner = runner or run_exec_capture

    @property
    def command(self) -> tuple[str, ...]:
        if self._platform == "win32":
            return POWERSHELL_COMMAND
        return PS_COMMAND

    async def locate(self) -> list[PeerProcess]:
        """Return every running editor process with a project open.

        Raises:
            LocateError: If the listing tool is missing, fails, or times out.
        """
        command = self.command
        try:
            result = await self._runner(*command, timeout=self._config.timeout_seconds)
        except FileNotFoundError as exc:
            msg = f"Process listing tool not found: {command[0]}"
            raise LocateError(msg) from exc
        except TimeoutError as exc:
            msg = f"Process listing timed out after {self._config.timeout_seconds:g}s"
            raise LocateError(msg) from exc
        except OSError as exc:
            msg = f"Could not run {command[0]}: {exc}"
            raise LocateError(msg) from exc

        if result.returncode != 0:
            detail = result.stderr_text().strip()
            msg = f"{command[0]} exited with status {result.returncode}: {detail}"
            raise LocateError(msg)

        names = self._config.executable_names
        flag = self._config.project_flag
        if self._platform == "win32":
            processes = parse_csv_output(result.stdout_text(), names, flag)
        else:
            processes = parse_ps_output(result.stdout_text(), names, flag)
        logger.debug("Located %d editor process(es)", len(processes))
        return processes

    async def find(self, target: str) -> PeerProcess | None:
        """Return the first editor process whose project is *target*."""
        wanted = normalize_target(target)
        for process in await self.locate():
            if normalize_target(process.target) == wanted:
                return process
        return None


__all__ = [
    "DEFAULT_EXECUTABLE_NAMES",
    "DEFAULT_PROJECT_FLAG",
    "PeerProcess",
    "ProcessLocator",
    "extract_project_path",
    "is_editor_command",
    "parse_csv_output",
    "parse_ps_output",
]
