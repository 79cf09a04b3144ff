"""editorlink: connection registry and IPC link for running Unity Editor instances."""

__version__ = "0.1.0"
