from __future__ import annotations

import asyncio
import shutil
from typing import TYPE_CHECKING

import pytest

from editorlink.core.config import EditorLinkConfig
from editorlink.core.errors import (
    InvalidTargetError,
    NoActiveConnectionError,
    NotConnectedError,
    PeerRequiredError,
)
from editorlink.core.events import (
    ActiveProjectChanged,
    ConnectionHealthFailed,
    ProjectConnected,
    ProjectDisconnected,
    RegistryEvent,
)
from editorlink.core.ipc.link import PeerLink
from editorlink.core.ipc.rendezvous import rendezvous_path
from editorlink.core.registry import (
    ConnectionRegistry,
    ConnectionStatus,
    can_transition,
    is_peer_value,
)
from tests.helpers.wait import wait_until

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator, Callable
    from pathlib import Path

    from editorlink.core.locator import ProcessLocator


@pytest.fixture
async def registry(
    rendezvous_dir: Path,
    fast_config: EditorLinkConfig,
    quiet_locator: ProcessLocator,
) -> AsyncGenerator[ConnectionRegistry]:
    registry = ConnectionRegistry(fast_config, locator=quiet_locator)
    yield registry
    await registry.shutdown()


@pytest.fixture
def events(registry: ConnectionRegistry) -> list[RegistryEvent]:
    seen: list[RegistryEvent] = []
    registry.events.add_handler(seen.append)
    return seen


@pytest.mark.asyncio
async def test_connect_invalid_target_keeps_no_entry(
    registry: ConnectionRegistry, tmp_path: Path, events: list[RegistryEvent]
) -> None:
    with pytest.raises(InvalidTargetError) as exc_info:
        await registry.connect(tmp_path / "not-a-project")

    assert exc_info.value.code == "INVALID_TARGET"
    assert registry.get_connection(tmp_path / "not-a-project") is None
    assert registry.get_active() is None
    assert events == []


@pytest.mark.asyncio
async def test_connect_without_editor_is_project_only(
    registry: ConnectionRegistry,
    make_project: Callable[..., Path],
    events: list[RegistryEvent],
) -> None:
    project = make_project("Alpha", version="2021.3.5f1")

    connection = await registry.connect(project)

    assert connection.status is ConnectionStatus.PROJECT_ONLY
    assert connection.target == str(project)
    assert connection.project_name == "Alpha"
    assert connection.editor_version == "2021.3.5f1"
    assert connection.peer_process_id is None
    assert not connection.has_peer
    assert registry.get_active() == connection
    assert [type(event) for event in events] == [ActiveProjectChanged, ProjectConnected]
    assert events[1].status == "project_only"  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_peer_commands_require_live_editor(
    registry: ConnectionRegistry, make_project: Callable[..., Path]
) -> None:
    await registry.connect(make_project())

    with pytest.raises(PeerRequiredError) as exc_info:
        await registry.send_command("ping")
    assert exc_info.value.status == "project_only"

    with pytest.raises(PeerRequiredError):
        await registry.set_play_mode(True)
    with pytest.raises(PeerRequiredError):
        await registry.get_editor_state()


@pytest.mark.asyncio
async def test_lookups_without_connections(registry: ConnectionRegistry, tmp_path: Path) -> None:
    with pytest.raises(NoActiveConnectionError):
        await registry.send_command("ping")
    with pytest.raises(NoActiveConnectionError):
        await registry.disconnect()
    with pytest.raises(NotConnectedError):
        await registry.disconnect(tmp_path / "Unknown")
    with pytest.raises(NotConnectedError):
        registry.set_active(tmp_path / "Unknown")


@pytest.mark.asyncio
async def test_set_active_requires_connected_status(
    registry: ConnectionRegistry, make_project: Callable[..., Path]
) -> None:
    project = make_project()
    await registry.connect(project)

    with pytest.raises(NotConnectedError, match="project_only"):
        registry.set_active(project)


@pytest.mark.asyncio
async def test_disconnect_removes_entry_and_clears_active(
    registry: ConnectionRegistry,
    make_project: Callable[..., Path],
    events: list[RegistryEvent],
) -> None:
    project = make_project()
    await registry.connect(project)
    events.clear()

    await registry.disconnect(project)

    assert registry.get_connection(project) is None
    assert registry.get_active() is None
    assert registry.get_status().connections == ()
    assert [type(event) for event in events] == [ActiveProjectChanged, ProjectDisconnected]


@pytest.mark.asyncio
async def test_connecting_second_project_moves_active(
    registry: ConnectionRegistry, make_project: Callable[..., Path]
) -> None:
    first = make_project("First")
    second = make_project("Second")
    await registry.connect(first)
    await registry.connect(second)

    status = registry.get_status()
    assert status.active_target == str(second)
    assert {c.target for c in status.connections} == {str(first), str(second)}

    await registry.disconnect(second)
    assert registry.get_active() is None
    assert registry.get_connection(first) is not None


@pytest.mark.asyncio
async def test_project_info_needs_no_connection(
    registry: ConnectionRegistry, make_project: Callable[..., Path]
) -> None:
    project = make_project("Racer", scenes=("Assets/Track.unity",))

    info = await registry.get_project_info(project)
    assert info.name == "Racer"
    assert [scene.name for scene in info.scenes] == ["Track"]

    with pytest.raises(NoActiveConnectionError):
        await registry.get_project_info()

    await registry.connect(project)
    assert (await registry.get_project_info()).path == str(project)


@pytest.mark.asyncio
async def test_discover(
    registry: ConnectionRegistry, make_project: Callable[..., Path], tmp_path: Path
) -> None:
    make_project("Alpha")
    make_project("Beta")
    found = await registry.discover(tmp_path)
    assert [path.rsplit("/", 1)[-1] for path in found] == ["Alpha", "Beta"]


@pytest.mark.asyncio
async def test_health_sweep_flags_only_broken_project(
    registry: ConnectionRegistry,
    make_project: Callable[..., Path],
    events: list[RegistryEvent],
) -> None:
    healthy = make_project("Healthy")
    broken = make_project("Broken")
    await registry.connect(healthy)
    await registry.connect(broken)
    before = registry.get_connection(healthy)
    assert before is not None

    shutil.rmtree(broken / "Assets")
    await registry.check_health()

    failed = registry.get_connection(broken)
    assert failed is not None
    assert failed.status is ConnectionStatus.ERROR
    assert failed.last_error is not None and "Assets" in failed.last_error

    still_fine = registry.get_connection(healthy)
    assert still_fine is not None
    assert still_fine.status is ConnectionStatus.PROJECT_ONLY
    assert still_fine.last_heartbeat >= before.last_heartbeat

    health_events = [event for event in events if isinstance(event, ConnectionHealthFailed)]
    assert [event.target for event in health_events] == [str(broken)]
    assert registry.get_status().last_error == failed.last_error


@pytest.mark.asyncio
async def test_connect_recovers_from_error(
    registry: ConnectionRegistry, make_project: Callable[..., Path]
) -> None:
    project = make_project()
    await registry.connect(project)
    shutil.rmtree(project / "Assets")
    await registry.check_health()
    errored = registry.get_connection(project)
    assert errored is not None
    assert errored.status is ConnectionStatus.ERROR

    (project / "Assets").mkdir()
    connection = await registry.connect(project)

    assert connection.status is ConnectionStatus.PROJECT_ONLY
    assert connection.last_error is None


@pytest.mark.asyncio
async def test_unexpected_connect_failure_records_error(
    rendezvous_dir: Path,
    fast_config: EditorLinkConfig,
    quiet_locator: ProcessLocator,
    make_project: Callable[..., Path],
) -> None:
    def _broken_factory(target: str) -> PeerLink:
        raise RuntimeError("factory exploded")

    registry = ConnectionRegistry(fast_config, locator=quiet_locator, link_factory=_broken_factory)
    try:
        connection = await registry.connect(make_project())
        assert connection.status is ConnectionStatus.ERROR
        assert connection.last_error == "Connect failed: factory exploded"
    finally:
        await registry.shutdown()


@pytest.mark.asyncio
async def test_concurrent_connects_share_one_attempt(
    rendezvous_dir: Path,
    fast_config: EditorLinkConfig,
    quiet_locator: ProcessLocator,
    make_project: Callable[..., Path],
) -> None:
    created: list[str] = []

    def _factory(target: str) -> PeerLink:
        created.append(target)
        return PeerLink(rendezvous_path(target), connect_timeout=0.2)

    registry = ConnectionRegistry(fast_config, locator=quiet_locator, link_factory=_factory)
    project = make_project()
    try:
        first, second = await asyncio.gather(registry.connect(project), registry.connect(project))
    finally:
        await registry.shutdown()

    assert created == [str(project)]
    assert first == second
    assert first.status is ConnectionStatus.PROJECT_ONLY


@pytest.mark.asyncio
async def test_disconnect_aborts_in_flight_connect(
    rendezvous_dir: Path,
    quiet_locator: ProcessLocator,
    make_project: Callable[..., Path],
) -> None:
    config = EditorLinkConfig.model_validate(
        {"link": {"connect_timeout_seconds": 30.0}, "health": {"enabled": False}}
    )
    created: list[PeerLink] = []

    async def _never_answers(path: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    def _factory(target: str) -> PeerLink:
        link = PeerLink(rendezvous_path(target), opener=_never_answers)
        created.append(link)
        return link

    registry = ConnectionRegistry(config, locator=quiet_locator, link_factory=_factory)
    project = make_project()

    attempt = asyncio.create_task(registry.connect(project))
    await wait_until(lambda: len(created) == 1)
    connecting = registry.get_connection(project)
    assert connecting is not None
    assert connecting.status is ConnectionStatus.CONNECTING

    await registry.disconnect(project)

    with pytest.raises(NotConnectedError):
        await attempt
    assert registry.get_connection(project) is None
    assert created[0].closed
    await registry.shutdown()


@pytest.mark.asyncio
async def test_async_context_manager_shuts_down(
    rendezvous_dir: Path,
    fast_config: EditorLinkConfig,
    quiet_locator: ProcessLocator,
    make_project: Callable[..., Path],
) -> None:
    config = fast_config.model_copy(
        update={"health": fast_config.health.model_copy(update={"enabled": True})}
    )
    async with ConnectionRegistry(config, locator=quiet_locator) as registry:
        assert registry._health_task is not None
        await registry.connect(make_project())

    assert registry._health_task is None
    assert registry.get_status().connections == ()


def test_transition_table() -> None:
    assert can_transition(ConnectionStatus.DISCONNECTED, ConnectionStatus.CONNECTING)
    assert can_transition(ConnectionStatus.CONNECTING, ConnectionStatus.PROJECT_ONLY)
    assert can_transition(ConnectionStatus.CONNECTED, ConnectionStatus.PROJECT_ONLY)
    assert can_transition(ConnectionStatus.PROJECT_ONLY, ConnectionStatus.CONNECTED)
    assert can_transition(ConnectionStatus.ERROR, ConnectionStatus.CONNECTING)
    assert not can_transition(ConnectionStatus.DISCONNECTED, ConnectionStatus.CONNECTED)
    assert not can_transition(ConnectionStatus.ERROR, ConnectionStatus.CONNECTED)
    assert not can_transition(ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Main", True),
        (3, True),
        (1.5, True),
        (False, True),
        (None, True),
        (["Assets/A.unity", "Assets/B.unity"], True),
        ({"nested": 1}, False),
        ([["deep"]], False),
    ],
)
def test_peer_value_kinds(value: object, expected: bool) -> None:
    assert is_peer_value(value) is expected


class _RecordingBus:
    """Minimal event bus that only records what it is given."""

    def __init__(self) -> None:
        self.published: list[RegistryEvent] = []

    def publish(self, event: RegistryEvent) -> None:
        self.published.append(event)

    def subscribe(
        self, event_type: type[RegistryEvent] | None = None
    ) -> AsyncIterator[RegistryEvent]:
        raise NotImplementedError

    def add_handler(
        self,
        handler: Callable[[RegistryEvent], None],
        event_type: type[RegistryEvent] | None = None,
    ) -> None:
        raise NotImplementedError

    def remove_handler(self, handler: Callable[[RegistryEvent], None]) -> None:
        raise NotImplementedError


@pytest.mark.asyncio
async def test_registry_publishes_to_supplied_bus(
    rendezvous_dir: Path,
    fast_config: EditorLinkConfig,
    quiet_locator: ProcessLocator,
    make_project: Callable[..., Path],
) -> None:
    bus = _RecordingBus()
    registry = ConnectionRegistry(fast_config, locator=quiet_locator, event_bus=bus)
    try:
        await registry.connect(make_project())
        await registry.disconnect()
    finally:
        await registry.shutdown()

    assert registry.events is bus
    assert [type(event) for event in bus.published] == [
        ActiveProjectChanged,
        ProjectConnected,
        ActiveProjectChanged,
        ProjectDisconnected,
    ]
