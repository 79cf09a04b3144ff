"""Deterministic rendezvous naming shared with the editor plugin.

Both sides derive the endpoint name from the project path alone, so the
algorithm here must stay bit-for-bit compatible with the plugin: a
31-multiplier string hash over UTF-16 code units, wrapped to a signed
32-bit integer at every step.

The hashed string is the target as normalized by
:func:`editorlink.core.paths.normalize_target`: expanded, absolute, with
``..`` and trailing separators collapsed, symlinks left untouched.
"""

from __future__ import annotations

import sys

from editorlink.core.paths import get_rendezvous_dir

DEFAULT_PIPE_PREFIX = "unity-mcp"
_WINDOWS_PIPE_ROOT = "\\\\.\\pipe\\"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x1_0000_0000 if value & 0x8000_0000 else value


def _utf16_units(text: str) -> list[int]:
    raw = text.encode("utf-16-le", errors="surrogatepass")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def hash32(text: str) -> int:
    """Return the signed 32-bit string hash of *text*."""
    result = 0
    for unit in _utf16_units(text):
        result = _to_int32((result << 5) - result + unit)
    return result


def endpoint_name(target: str, prefix: str = DEFAULT_PIPE_PREFIX) -> str:
    """Return the rendezvous name for a project path."""
    return f"{prefix}-{abs(hash32(target))}"


def rendezvous_path(
    target: str,
    prefix: str = DEFAULT_PIPE_PREFIX,
    *,
    platform: str | None = None,
) -> str:
    """Return the full rendezvous address for *target* on *platform*.

    Windows gets a named pipe path; every other platform gets a Unix socket
    path under the rendezvous directory (``/tmp`` unless overridden).
    """
    name = endpoint_name(target, prefix)
    if (platform or sys.platform) == "win32":
        return _WINDOWS_PIPE_ROOT + name
    return str(get_rendezvous_dir() / name)


__all__ = ["DEFAULT_PIPE_PREFIX", "endpoint_name", "hash32", "rendezvous_path"]
