"""Project discovery, rendezvous, and status commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import click

from editorlink.core.errors import InvalidTargetError
from editorlink.core.ipc.rendezvous import endpoint_name, rendezvous_path
from editorlink.core.paths import normalize_target
from editorlink.core.project import discover_projects, read_editor_version
from editorlink.core.registry import ConnectionRegistry

if TYPE_CHECKING:
    from editorlink.core.config import EditorLinkConfig
    from editorlink.core.registry import Connection


@click.command()
@click.argument("search_root", type=click.Path(file_okay=False, path_type=Path))
@click.option("--recursive", is_flag=True, help="Search all descendants, not just children")
def discover(search_root: Path, recursive: bool) -> None:
    """List projects under SEARCH_ROOT."""
    projects = discover_projects(search_root, recursive=recursive)
    if not projects:
        click.secho("No projects found.", fg="yellow")
        return

    for project in projects:
        version = read_editor_version(project)
        click.echo(f"{project}  ({version})")


@click.command()
@click.argument("target")
@click.pass_obj
def endpoint(config: EditorLinkConfig, target: str) -> None:
    """Show the rendezvous endpoint the editor for TARGET listens on."""
    key = normalize_target(target)
    prefix = config.link.pipe_prefix
    click.echo(f"  Project: {key}")
    click.echo(f"  Name:    {endpoint_name(key, prefix)}")
    click.echo(f"  Path:    {rendezvous_path(key, prefix)}")


def _print_connection(connection: Connection) -> None:
    color = "green" if connection.has_peer else "yellow"
    click.echo(f"  Project: {connection.target}")
    click.echo(f"  Status:  {click.style(connection.status.value, fg=color)}")
    click.echo(f"  Name:    {connection.project_name}")
    click.echo(f"  Version: {connection.editor_version}")
    if connection.peer_process_id is not None:
        click.echo(f"  PID:     {connection.peer_process_id}")
    if connection.last_error:
        click.echo(f"  Error:   {connection.last_error}")
    for key, value in sorted(connection.peer_state.items()):
        click.echo(f"    {key}: {value}")


async def _probe_status(config: EditorLinkConfig, target: str) -> Connection:
    registry = ConnectionRegistry(config)
    try:
        return await registry.connect(target)
    finally:
        await registry.shutdown()


@click.command()
@click.argument("target")
@click.pass_obj
def status(config: EditorLinkConfig, target: str) -> None:
    """Connect to TARGET once and report whether its editor is reachable."""
    try:
        connection = asyncio.run(_probe_status(config, target))
    except InvalidTargetError as error:
        click.secho(str(error), fg="red", err=True)
        raise SystemExit(1) from error

    _print_connection(connection)
