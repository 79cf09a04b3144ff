"""Error taxonomy for editor connections.

Every error carries a machine-readable ``code`` so callers (and the tool layer
above this package) can branch on the failure kind without string matching.
"""

from __future__ import annotations


class EditorLinkError(Exception):
    """Base class for all editorlink failures."""

    code = "EDITORLINK_ERROR"


class InvalidTargetError(EditorLinkError):
    """The target is not a well-formed project. Fatal; never retried."""

    code = "INVALID_TARGET"

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"Invalid project {target}: {reason}")
        self.target = target
        self.reason = reason


class LocateError(EditorLinkError):
    """The OS process listing mechanism could not be invoked."""

    code = "LOCATE_FAILED"


class TransportConnectError(EditorLinkError):
    """A rendezvous connection attempt failed or timed out."""

    code = "TRANSPORT_CONNECT_FAILED"

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"Could not connect to {path}: {detail}")
        self.path = path
        self.detail = detail


class FramingError(EditorLinkError):
    """Inbound bytes violated the stream framing."""

    code = "FRAMING_ERROR"


class PeerDisconnectedError(EditorLinkError, ConnectionError):
    """The peer link closed before a response arrived."""

    code = "PEER_DISCONNECTED"


class RequestTimeoutError(EditorLinkError, TimeoutError):
    """A single request exceeded its deadline."""

    code = "REQUEST_TIMEOUT"

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"Command timeout: {command} (after {timeout:g}s)")
        self.command = command
        self.timeout = timeout


class PeerRequiredError(EditorLinkError):
    """The command needs a live editor but the connection has none attached."""

    code = "PEER_REQUIRED"

    def __init__(self, target: str, status: str) -> None:
        super().__init__(f"Editor is not running for project {target} (status: {status})")
        self.target = target
        self.status = status


class PeerCommandError(EditorLinkError):
    """The editor answered a command with ``success: false``."""

    code = "PEER_COMMAND_FAILED"

    def __init__(self, command: str, message: str | None) -> None:
        super().__init__(f"Editor rejected {command}: {message or 'unknown error'}")
        self.command = command
        self.message = message


class NotConnectedError(EditorLinkError):
    """The target is unknown to the registry or not in the required state."""

    code = "NOT_CONNECTED"


class NoActiveConnectionError(EditorLinkError):
    """No target was given and no connection is active."""

    code = "NO_ACTIVE_CONNECTION"

    def __init__(self) -> None:
        super().__init__("No project specified and no active connection")


__all__ = [
    "EditorLinkError",
    "FramingError",
    "InvalidTargetError",
    "LocateError",
    "NoActiveConnectionError",
    "NotConnectedError",
    "PeerCommandError",
    "PeerDisconnectedError",
    "PeerRequiredError",
    "RequestTimeoutError",
    "TransportConnectError",
]
