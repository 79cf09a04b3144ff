"""Wire message contracts exchanged with the editor plugin.

Every message is one JSON object. Requests carry ``id`` and ``command``,
responses echo the ``id`` with ``success`` and ``data`` or ``error``, and
unsolicited events carry ``type`` and no ``id``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    """Return the current time as an ISO-8601 UTC string."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class WireMessage(BaseModel):
    """Loose view over any inbound JSON object.

    Unknown keys are tolerated so newer plugin builds can add fields.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    command: str | None = None
    type: str | None = None
    data: Any = None
    parameters: dict[str, Any] | None = None
    success: bool | None = None
    error: str | None = None
    timestamp: str | None = None

    @property
    def is_event(self) -> bool:
        """Whether this message is an unsolicited event."""
        return self.id is None and self.type is not None


class PeerRequest(BaseModel):
    """Command sent to the editor."""

    id: str = Field(description="Correlation id echoed by the response")
    command: str = Field(description="Command name, e.g. 'ping' or 'load_scene'")
    parameters: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=utc_timestamp)

    def to_bytes(self) -> bytes:
        """Serialize as compact UTF-8 JSON."""
        return self.model_dump_json().encode("utf-8")


class PeerResponse(BaseModel):
    """Reply from the editor to one request."""

    id: str
    success: bool = False
    data: Any = None
    error: str | None = None
    command: str | None = Field(
        default=None,
        description="Echoed command name; some plugin builds include it",
    )
    timestamp: str | None = None

    @classmethod
    def from_wire(cls, message: WireMessage) -> PeerResponse:
        if message.id is None:
            msg = "Response message has no id"
            raise ValueError(msg)
        return cls(
            id=message.id,
            success=bool(message.success),
            data=message.data,
            error=message.error,
            command=message.command,
            timestamp=message.timestamp,
        )


class PeerEvent(BaseModel):
    """Unsolicited notification pushed by the editor."""

    type: str
    data: Any = None
    timestamp: str | None = None

    @classmethod
    def from_wire(cls, message: WireMessage) -> PeerEvent:
        if message.type is None:
            msg = "Event message has no type"
            raise ValueError(msg)
        return cls(type=message.type, data=message.data, timestamp=message.timestamp)


__all__ = [
    "PeerEvent",
    "PeerRequest",
    "PeerResponse",
    "WireMessage",
    "utc_timestamp",
]
