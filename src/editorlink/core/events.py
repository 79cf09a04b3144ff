"""Registry events and event bus contracts."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4


def _new_event_id() -> str:
    return uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


class RegistryEvent(Protocol):
    """Base protocol for all registry events."""

    @property
    def event_id(self) -> str: ...

    @property
    def occurred_at(self) -> datetime: ...

    @property
    def target(self) -> str | None: ...


EventHandler = Callable[[RegistryEvent], None]


class EventBus(Protocol):
    """Synchronous fan-out bus for registry events."""

    def publish(self, event: RegistryEvent) -> None:
        """Publish a single event to handlers and subscribers."""
        ...

    def subscribe(
        self, event_type: type[RegistryEvent] | None = None
    ) -> AsyncIterator[RegistryEvent]:
        """Subscribe to events (optionally filtered by type)."""
        ...

    def add_handler(
        self,
        handler: EventHandler,
        event_type: type[RegistryEvent] | None = None,
    ) -> None:
        """Register a sync handler for events."""
        ...

    def remove_handler(self, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        ...


# Connection lifecycle


@dataclass(frozen=True)
class ProjectConnected:
    target: str
    status: str
    peer_process_id: int | None = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class ProjectDisconnected:
    target: str
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class ActiveProjectChanged:
    target: str | None
    previous: str | None = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class ConnectionHealthFailed:
    target: str
    reason: str
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


# Link recovery


@dataclass(frozen=True)
class PeerLinkLost:
    target: str
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class PeerLinkRestored:
    target: str
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


# Editor notifications


@dataclass(frozen=True)
class PeerStateUpdated:
    target: str
    state: dict[str, Any]
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class PlayModeChanged:
    target: str
    is_playing: bool
    state: str | None = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class SceneOpened:
    target: str
    scene_name: str | None
    scene_path: str | None = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class HierarchyChanged:
    target: str
    active_scene: str | None = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_now)


__all__ = [
    "ActiveProjectChanged",
    "ConnectionHealthFailed",
    "EventBus",
    "EventHandler",
    "HierarchyChanged",
    "PeerLinkLost",
    "PeerLinkRestored",
    "PeerStateUpdated",
    "PlayModeChanged",
    "ProjectConnected",
    "ProjectDisconnected",
    "RegistryEvent",
    "SceneOpened",
]
