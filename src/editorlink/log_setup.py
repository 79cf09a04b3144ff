"""Logging setup for the command line."""

from __future__ import annotations

import logging
import sys

_cli_logging_initialized: bool = False


def setup_cli_logging(verbose: bool = False) -> None:
    """Send editorlink logs to stderr; DEBUG when *verbose*, WARNING otherwise.

    Idempotent: later calls only adjust the level.
    """
    global _cli_logging_initialized

    package_logger = logging.getLogger("editorlink")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    if _cli_logging_initialized:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    package_logger.addHandler(handler)
    _cli_logging_initialized = True


__all__ = ["setup_cli_logging"]
