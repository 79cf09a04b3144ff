"""Core connection model: locator, editor links, and the connection registry."""

from editorlink.core import errors, events

__all__ = [
    "errors",
    "events",
]
