"""Connection registry: one entry per target project, each with its own editor link.

The registry is the only owner of connection state. Every mutation happens
synchronously between awaits; any step that resumes after an await first
checks that its entry is still the one registered for the target, so a
``disconnect`` racing a ``connect`` never resurrects a dropped entry.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from editorlink.core.config import EditorLinkConfig
from editorlink.core.errors import (
    EditorLinkError,
    InvalidTargetError,
    LocateError,
    NoActiveConnectionError,
    NotConnectedError,
    PeerCommandError,
    PeerRequiredError,
)
from editorlink.core.event_bus import InMemoryEventBus
from editorlink.core.events import (
    ActiveProjectChanged,
    ConnectionHealthFailed,
    HierarchyChanged,
    PeerLinkLost,
    PeerLinkRestored,
    PeerStateUpdated,
    PlayModeChanged,
    ProjectConnected,
    ProjectDisconnected,
    SceneOpened,
)
from editorlink.core.ipc.backoff import ReconnectPolicy
from editorlink.core.ipc.correlator import WILDCARD, MessageCorrelator
from editorlink.core.ipc.framing import codec_for
from editorlink.core.ipc.link import LinkState, PeerLink
from editorlink.core.ipc.rendezvous import rendezvous_path
from editorlink.core.locator import ProcessLocator
from editorlink.core.paths import normalize_target
from editorlink.core.project import (
    discover_projects,
    project_problem,
    read_editor_version,
    read_project_info,
    validate_project,
)

if TYPE_CHECKING:
    import os
    from collections.abc import Callable

    from editorlink.core.events import EventBus
    from editorlink.core.ipc.contracts import PeerEvent, PeerResponse
    from editorlink.core.project import ProjectInfo

    LinkFactory = Callable[[str], PeerLink]

logger = logging.getLogger(__name__)

type PeerScalar = str | int | float | bool | None
type PeerValue = PeerScalar | list[PeerScalar]
type PeerState = dict[str, PeerValue]


class ConnectionStatus(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PROJECT_ONLY = "project_only"
    ERROR = "error"


_TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset(
        {
            ConnectionStatus.CONNECTED,
            ConnectionStatus.PROJECT_ONLY,
            ConnectionStatus.ERROR,
            ConnectionStatus.DISCONNECTED,
        }
    ),
    ConnectionStatus.CONNECTED: frozenset(
        {
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.ERROR,
            ConnectionStatus.PROJECT_ONLY,
        }
    ),
    ConnectionStatus.PROJECT_ONLY: frozenset(
        {
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.ERROR,
            ConnectionStatus.CONNECTED,
            ConnectionStatus.CONNECTING,
        }
    ),
    ConnectionStatus.ERROR: frozenset(
        {ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED}
    ),
}

_LIVE_STATUSES = frozenset({ConnectionStatus.CONNECTED, ConnectionStatus.PROJECT_ONLY})


def can_transition(current: ConnectionStatus, new: ConnectionStatus) -> bool:
    """Whether the registry may move an entry from *current* to *new*."""
    return new in _TRANSITIONS[current]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _is_peer_scalar(value: object) -> bool:
    return value is None or isinstance(value, str | int | float | bool)


def is_peer_value(value: object) -> bool:
    """Whether *value* fits the closed set of kinds stored in peer state."""
    if isinstance(value, list):
        return all(_is_peer_scalar(item) for item in value)
    return _is_peer_scalar(value)


@dataclass(frozen=True)
class Connection:
    """Immutable snapshot of one registry entry."""

    target: str
    status: ConnectionStatus
    last_heartbeat: datetime
    peer_process_id: int | None = None
    peer_state: PeerState = field(default_factory=dict)
    project_name: str | None = None
    editor_version: str | None = None
    last_error: str | None = None

    @property
    def has_peer(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED


@dataclass(frozen=True)
class RegistryStatus:
    """Point-in-time view over the whole registry."""

    connections: tuple[Connection, ...]
    active_target: str | None
    is_compiling: bool
    play_mode_state: str
    last_error: str | None = None


@dataclass
class _Entry:
    target: str
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_heartbeat: datetime = field(default_factory=_utcnow)
    peer_process_id: int | None = None
    peer_state: PeerState = field(default_factory=dict)
    project_name: str | None = None
    editor_version: str | None = None
    last_error: str | None = None
    link: PeerLink | None = None
    correlator: MessageCorrelator | None = None
    detach: list[Callable[[], None]] = field(default_factory=list)
    connect_task: asyncio.Task[Connection] | None = None
    restore_task: asyncio.Task[None] | None = None

    def snapshot(self) -> Connection:
        return Connection(
            target=self.target,
            status=self.status,
            last_heartbeat=self.last_heartbeat,
            peer_process_id=self.peer_process_id,
            peer_state=dict(self.peer_state),
            project_name=self.project_name,
            editor_version=self.editor_version,
            last_error=self.last_error,
        )


def _play_mode_state(peer_state: PeerState) -> str:
    if not peer_state.get("isPlaying"):
        return "Stopped"
    if peer_state.get("isPaused"):
        return "Paused"
    return "Playing"


class ConnectionRegistry:
    """Tracks connections to editor instances, keyed by normalized project path.

    Usage::

        async with ConnectionRegistry(config) as registry:
            connection = await registry.connect("/work/MyGame")
            if connection.has_peer:
                await registry.set_play_mode(True)
    """

    def __init__(
        self,
        config: EditorLinkConfig | None = None,
        *,
        locator: ProcessLocator | None = None,
        link_factory: LinkFactory | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config or EditorLinkConfig()
        self._locator = locator or ProcessLocator(self._config.locator)
        self._link_factory = link_factory or self._default_link
        self._events: EventBus = event_bus or InMemoryEventBus()
        self._entries: dict[str, _Entry] = {}
        self._active: str | None = None
        self._last_error: str | None = None
        self._health_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> ConnectionRegistry:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.shutdown()

    @property
    def events(self) -> EventBus:
        """Event bus carrying this registry's events."""
        return self._events

    @property
    def config(self) -> EditorLinkConfig:
        return self._config

    def _default_link(self, target: str) -> PeerLink:
        link_config = self._config.link
        return PeerLink(
            rendezvous_path(target, link_config.pipe_prefix),
            codec=codec_for(link_config.framing, link_config.max_frame_bytes),
            connect_timeout=link_config.connect_timeout_seconds,
            policy=ReconnectPolicy.from_config(self._config.reconnect),
        )

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, entry: _Entry, new: ConnectionStatus) -> None:
        if not can_transition(entry.status, new):
            msg = f"Illegal transition for {entry.target}: {entry.status} -> {new}"
            raise RuntimeError(msg)
        logger.debug("%s: %s -> %s", entry.target, entry.status, new)
        entry.status = new

    def _is_current(self, entry: _Entry) -> bool:
        return self._entries.get(entry.target) is entry

    def _ensure_current(self, entry: _Entry) -> None:
        if not self._is_current(entry):
            msg = f"Connection to {entry.target} was closed while connecting"
            raise NotConnectedError(msg)

    def _resolve_target(self, target: str | os.PathLike[str] | None) -> str:
        if target is None:
            if self._active is None:
                raise NoActiveConnectionError()
            return self._active
        key = normalize_target(target)
        if key not in self._entries:
            msg = f"No connection found for project: {key}"
            raise NotConnectedError(msg)
        return key

    def _make_active(self, key: str) -> None:
        if self._active == key:
            return
        previous = self._active
        self._active = key
        logger.info("Active project: %s", key)
        self._events.publish(ActiveProjectChanged(target=key, previous=previous))

    def _record_error(self, entry: _Entry, reason: str) -> None:
        entry.last_error = reason
        self._last_error = reason

    def _forget(self, entry: _Entry) -> None:
        """Remove an entry that never became a connection; no events beyond active change."""
        if not self._is_current(entry):
            return
        del self._entries[entry.target]
        if self._active == entry.target:
            self._active = None
            self._events.publish(ActiveProjectChanged(target=None, previous=entry.target))

    def _detach_link(self, entry: _Entry) -> PeerLink | None:
        """Unhook the entry from its link synchronously; the caller closes the link."""
        for detach in entry.detach:
            detach()
        entry.detach.clear()
        if entry.correlator is not None:
            entry.correlator.close()
            entry.correlator = None
        if entry.restore_task is not None:
            entry.restore_task.cancel()
            entry.restore_task = None
        link = entry.link
        entry.link = None
        return link

    def _attach_link(self, entry: _Entry, link: PeerLink) -> MessageCorrelator:
        correlator = MessageCorrelator(
            link,
            default_timeout=self._config.requests.default_timeout_seconds,
        )
        entry.link = link
        entry.correlator = correlator
        entry.detach = [
            link.on_state_change(partial(self._on_link_state, entry)),
            correlator.subscribe(WILDCARD, partial(self._on_peer_event, entry)),
        ]
        return correlator

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self, target: str | os.PathLike[str]) -> Connection:
        """Connect to the project at *target* and make it the active project.

        Returns the existing snapshot unchanged when already connected.
        Concurrent calls for one target share a single attempt.

        Raises:
            InvalidTargetError: If *target* is not a project. No entry is kept.
            NotConnectedError: If a concurrent ``disconnect`` aborted the attempt.
        """
        key = normalize_target(target)
        entry = self._entries.get(key)

        if entry is not None:
            if entry.status is ConnectionStatus.CONNECTED:
                self._make_active(key)
                return entry.snapshot()
            task = entry.connect_task
            if task is not None and not task.done():
                return await self._await_connect(key, task)
        else:
            entry = _Entry(target=key)
            self._entries[key] = entry

        stale_link = self._detach_link(entry)
        self._transition(entry, ConnectionStatus.CONNECTING)
        task = asyncio.create_task(
            self._establish(entry, stale_link),
            name=f"editorlink-connect:{key}",
        )
        task.add_done_callback(_log_connect_outcome)
        entry.connect_task = task
        return await self._await_connect(key, task)

    async def _await_connect(self, key: str, task: asyncio.Task[Connection]) -> Connection:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                msg = f"Connect to {key} was aborted by disconnect"
                raise NotConnectedError(msg) from None
            raise

    async def _establish(self, entry: _Entry, stale_link: PeerLink | None) -> Connection:
        key = entry.target
        try:
            if stale_link is not None:
                await stale_link.close()
                self._ensure_current(entry)

            try:
                await asyncio.to_thread(validate_project, key)
            except InvalidTargetError:
                self._forget(entry)
                raise
            self._ensure_current(entry)

            entry.project_name = Path(key).name
            entry.editor_version = await asyncio.to_thread(read_editor_version, key)
            self._ensure_current(entry)

            entry.peer_process_id = await self._locate_pid(key)
            self._ensure_current(entry)

            link = self._link_factory(key)
            self._attach_link(entry, link)
            connected = await link.connect(self._config.link.connect_timeout_seconds)
            self._ensure_current(entry)

            if connected and await self._probe(entry):
                self._ensure_current(entry)
                await self._refresh_state(entry)
                self._ensure_current(entry)
                self._transition(entry, ConnectionStatus.CONNECTED)
                logger.info("Connected to running editor for %s", key)
            else:
                self._transition(entry, ConnectionStatus.PROJECT_ONLY)
                if not link.is_connected and self._config.reconnect.watch_absent_peers:
                    link.start_reconnecting()
                logger.info("Editor not reachable for %s; static project access only", key)

            entry.last_heartbeat = _utcnow()
            entry.last_error = None
            self._make_active(key)
            self._events.publish(
                ProjectConnected(
                    target=key,
                    status=entry.status,
                    peer_process_id=entry.peer_process_id,
                )
            )
            return entry.snapshot()
        except (InvalidTargetError, NotConnectedError):
            raise
        except Exception as exc:
            if not self._is_current(entry):
                raise
            logger.exception("Connect to %s failed unexpectedly", key)
            self._record_error(entry, f"Connect failed: {exc}")
            self._transition(entry, ConnectionStatus.ERROR)
            link = self._detach_link(entry)
            if link is not None:
                await link.close()
            return entry.snapshot()
        finally:
            if entry.connect_task is asyncio.current_task():
                entry.connect_task = None

    async def _locate_pid(self, key: str) -> int | None:
        try:
            process = await self._locator.find(key)
        except LocateError as exc:
            logger.info("Process lookup unavailable: %s", exc)
            return None
        return process.pid if process is not None else None

    async def _probe(self, entry: _Entry) -> bool:
        correlator = entry.correlator
        if correlator is None:
            return False
        try:
            response = await correlator.request(
                "ping",
                timeout=self._config.requests.probe_timeout_seconds,
            )
        except EditorLinkError as exc:
            logger.warning("Editor for %s did not answer ping: %s", entry.target, exc)
            return False
        return response.success

    async def _refresh_state(self, entry: _Entry) -> None:
        correlator = entry.correlator
        if correlator is None:
            return
        try:
            response = await correlator.request(
                "get_state",
                timeout=self._config.requests.probe_timeout_seconds,
            )
        except EditorLinkError as exc:
            logger.debug("Initial get_state for %s failed: %s", entry.target, exc)
            return
        if response.success and isinstance(response.data, dict):
            self._merge_state(entry, response.data)

    async def disconnect(self, target: str | os.PathLike[str] | None = None) -> None:
        """Drop the connection to *target* (the active project when omitted).

        Pending requests fail with ``PeerDisconnectedError`` before this returns.

        Raises:
            NoActiveConnectionError: If *target* is omitted and nothing is active.
            NotConnectedError: If *target* has no entry.
        """
        key = self._resolve_target(target)
        entry = self._entries.pop(key)
        self._transition(entry, ConnectionStatus.DISCONNECTED)

        connect_task = entry.connect_task
        entry.connect_task = None
        if connect_task is not None and not connect_task.done():
            connect_task.cancel()

        link = self._detach_link(entry)
        if self._active == key:
            self._active = None
            self._events.publish(ActiveProjectChanged(target=None, previous=key))
        logger.info("Disconnected from %s", key)
        self._events.publish(ProjectDisconnected(target=key))

        if connect_task is not None:
            await asyncio.gather(connect_task, return_exceptions=True)
        if link is not None:
            await link.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_status(self) -> RegistryStatus:
        """Return a snapshot of every connection plus the active editor's state."""
        active = self._entries.get(self._active) if self._active is not None else None
        peer_state = active.peer_state if active is not None else {}
        return RegistryStatus(
            connections=tuple(entry.snapshot() for entry in self._entries.values()),
            active_target=self._active,
            is_compiling=bool(peer_state.get("isCompiling", False)),
            play_mode_state=_play_mode_state(peer_state),
            last_error=self._last_error,
        )

    def get_connection(self, target: str | os.PathLike[str]) -> Connection | None:
        entry = self._entries.get(normalize_target(target))
        return entry.snapshot() if entry is not None else None

    def get_active(self) -> Connection | None:
        """Return the active connection, if any."""
        if self._active is None:
            return None
        entry = self._entries.get(self._active)
        return entry.snapshot() if entry is not None else None

    def set_active(self, target: str | os.PathLike[str]) -> Connection:
        """Make *target* the active project.

        Raises:
            NotConnectedError: Unless *target* has a live editor connection.
        """
        key = normalize_target(target)
        entry = self._entries.get(key)
        if entry is None or entry.status is not ConnectionStatus.CONNECTED:
            status = entry.status if entry is not None else ConnectionStatus.DISCONNECTED
            msg = f"Project not connected: {key} (status: {status})"
            raise NotConnectedError(msg)
        self._make_active(key)
        return entry.snapshot()

    async def discover(
        self,
        search_root: str | os.PathLike[str],
        *,
        recursive: bool = False,
    ) -> list[str]:
        """Return valid projects under *search_root*."""
        return await asyncio.to_thread(discover_projects, search_root, recursive=recursive)

    async def get_project_info(self, target: str | os.PathLike[str] | None = None) -> ProjectInfo:
        """Return static metadata for *target* (the active project when omitted).

        Works for any valid project directory; no connection is needed when
        *target* is given.
        """
        if target is None:
            if self._active is None:
                raise NoActiveConnectionError()
            key = self._active
        else:
            key = normalize_target(target)
        return await asyncio.to_thread(read_project_info, key)

    # ------------------------------------------------------------------
    # Peer commands
    # ------------------------------------------------------------------

    async def send_command(
        self,
        command: str,
        parameters: dict[str, Any] | None = None,
        *,
        target: str | os.PathLike[str] | None = None,
        timeout: float | None = None,
    ) -> PeerResponse:
        """Send a raw command to the editor for *target* and return its response.

        Raises:
            PeerRequiredError: If the entry has no live editor.
            RequestTimeoutError: If the editor does not answer in time.
            PeerDisconnectedError: If the link drops before the answer.
        """
        key = self._resolve_target(target)
        entry = self._entries[key]
        correlator = entry.correlator
        if (
            entry.status is not ConnectionStatus.CONNECTED
            or correlator is None
            or not correlator.link.is_connected
        ):
            raise PeerRequiredError(key, entry.status)

        response = await correlator.request(command, parameters, timeout=timeout)
        if self._is_current(entry):
            entry.last_heartbeat = _utcnow()
        return response

    async def _command(
        self,
        command: str,
        parameters: dict[str, Any] | None = None,
        *,
        target: str | os.PathLike[str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        response = await self.send_command(command, parameters, target=target, timeout=timeout)
        if not response.success:
            raise PeerCommandError(command, response.error)
        return response.data

    async def ping(self, *, target: str | os.PathLike[str] | None = None) -> Any:
        return await self._command("ping", target=target)

    async def get_editor_state(
        self, *, target: str | os.PathLike[str] | None = None
    ) -> dict[str, Any]:
        """Fetch the editor's current state and fold it into the connection's peer state."""
        key = self._resolve_target(target)
        data = await self._command("get_state", target=key)
        if not isinstance(data, dict):
            return {}
        entry = self._entries.get(key)
        if entry is not None:
            self._merge_state(entry, data)
        return dict(data)

    async def set_play_mode(
        self,
        playing: bool,
        *,
        target: str | os.PathLike[str] | None = None,
    ) -> Any:
        command = "enter_play_mode" if playing else "exit_play_mode"
        return await self._command(command, target=target)

    async def load_scene(
        self,
        scene_path: str,
        *,
        target: str | os.PathLike[str] | None = None,
    ) -> Any:
        return await self._command("load_scene", {"scenePath": scene_path}, target=target)

    async def refresh_assets(self, *, target: str | os.PathLike[str] | None = None) -> Any:
        return await self._command("refresh_assets", target=target)

    # ------------------------------------------------------------------
    # Link and editor event handling
    # ------------------------------------------------------------------

    def _on_link_state(self, entry: _Entry, state: LinkState) -> None:
        if not self._is_current(entry) or entry.link is None:
            return
        if state is LinkState.DISCONNECTED:
            if entry.status is not ConnectionStatus.CONNECTED:
                return
            self._transition(entry, ConnectionStatus.PROJECT_ONLY)
            entry.peer_process_id = None
            entry.peer_state.clear()
            logger.warning("Editor disconnected from %s; waiting for it to return", entry.target)
            self._events.publish(PeerLinkLost(target=entry.target))
            return

        if entry.status is ConnectionStatus.PROJECT_ONLY and entry.restore_task is None:
            entry.restore_task = asyncio.create_task(
                self._restore(entry),
                name=f"editorlink-restore:{entry.target}",
            )

    async def _restore(self, entry: _Entry) -> None:
        try:
            if not await self._probe(entry):
                return
            if not self._is_current(entry) or entry.status is not ConnectionStatus.PROJECT_ONLY:
                return
            await self._refresh_state(entry)
            pid = await self._locate_pid(entry.target)
            if not self._is_current(entry) or entry.status is not ConnectionStatus.PROJECT_ONLY:
                return
            if entry.link is None or not entry.link.is_connected:
                return
            entry.peer_process_id = pid
            entry.last_heartbeat = _utcnow()
            self._transition(entry, ConnectionStatus.CONNECTED)
            logger.info("Editor link to %s restored", entry.target)
            self._events.publish(PeerLinkRestored(target=entry.target))
        finally:
            if entry.restore_task is asyncio.current_task():
                entry.restore_task = None

    def _merge_state(self, entry: _Entry, data: dict[str, Any]) -> PeerState:
        accepted: PeerState = {}
        for key, value in data.items():
            if is_peer_value(value):
                accepted[key] = value
            else:
                logger.debug("Dropping peer state %s=%r: unsupported value kind", key, value)
        entry.peer_state.update(accepted)
        return accepted

    def _on_peer_event(self, entry: _Entry, event: PeerEvent) -> None:
        if not self._is_current(entry):
            return
        data = event.data if isinstance(event.data, dict) else {}
        target = entry.target

        match event.type:
            case "state_update":
                accepted = self._merge_state(entry, data)
                entry.last_heartbeat = _utcnow()
                self._events.publish(PeerStateUpdated(target=target, state=dict(accepted)))
            case "play_mode_changed":
                is_playing = bool(data.get("isPlaying", False))
                state = data.get("state")
                entry.peer_state["isPlaying"] = is_playing
                if isinstance(state, str):
                    entry.peer_state["playModeState"] = state
                self._events.publish(
                    PlayModeChanged(
                        target=target,
                        is_playing=is_playing,
                        state=state if isinstance(state, str) else None,
                    )
                )
            case "scene_opened":
                scene_name = data.get("sceneName")
                scene_path = data.get("scenePath")
                if isinstance(scene_name, str):
                    entry.peer_state["activeScene"] = scene_name
                self._events.publish(
                    SceneOpened(
                        target=target,
                        scene_name=scene_name if isinstance(scene_name, str) else None,
                        scene_path=scene_path if isinstance(scene_path, str) else None,
                    )
                )
            case "hierarchy_changed":
                active_scene = data.get("activeScene")
                if isinstance(active_scene, str):
                    entry.peer_state["activeScene"] = active_scene
                self._events.publish(
                    HierarchyChanged(
                        target=target,
                        active_scene=active_scene if isinstance(active_scene, str) else None,
                    )
                )
            case _:
                logger.debug("Unhandled editor event %s from %s", event.type, target)

    # ------------------------------------------------------------------
    # Health sweep and lifecycle
    # ------------------------------------------------------------------

    async def check_health(self) -> None:
        """Re-validate every live entry's project directory once."""
        for key, entry in list(self._entries.items()):
            if entry.status not in _LIVE_STATUSES:
                continue
            try:
                await self._check_entry(entry)
            except Exception:
                logger.exception("Health check for %s failed unexpectedly", key)

    async def _check_entry(self, entry: _Entry) -> None:
        problem = await asyncio.to_thread(project_problem, entry.target)
        if not self._is_current(entry) or entry.status not in _LIVE_STATUSES:
            return
        if problem is None:
            entry.last_heartbeat = _utcnow()
            return

        reason = f"Project directory no longer valid: {problem}"
        logger.warning("Health check failed for %s: %s", entry.target, reason)
        self._record_error(entry, reason)
        self._transition(entry, ConnectionStatus.ERROR)
        link = self._detach_link(entry)
        entry.peer_process_id = None
        entry.peer_state.clear()
        self._events.publish(ConnectionHealthFailed(target=entry.target, reason=reason))
        if link is not None:
            await link.close()

    async def _health_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.check_health()

    def start(self) -> None:
        """Start the background health sweep when enabled in config."""
        health = self._config.health
        if not health.enabled or self._health_task is not None:
            return
        self._health_task = asyncio.create_task(
            self._health_loop(health.interval_seconds),
            name="editorlink-health",
        )

    async def shutdown(self) -> None:
        """Stop the health sweep and disconnect every entry."""
        task = self._health_task
        self._health_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for key in list(self._entries):
            if key in self._entries:
                await self.disconnect(key)


def _log_connect_outcome(task: asyncio.Task[Connection]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Connect task %s ended with %s", task.get_name(), exc)


__all__ = [
    "Connection",
    "ConnectionRegistry",
    "ConnectionStatus",
    "PeerState",
    "PeerValue",
    "RegistryStatus",
    "can_transition",
    "is_peer_value",
]
