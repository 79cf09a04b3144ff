"""Running editor listing command."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import click

from editorlink.core.errors import LocateError
from editorlink.core.locator import ProcessLocator

if TYPE_CHECKING:
    from editorlink.core.config import EditorLinkConfig


@click.command()
@click.pass_obj
def locate(config: EditorLinkConfig) -> None:
    """List running editors and the projects they have open."""
    try:
        processes = asyncio.run(ProcessLocator(config.locator).locate())
    except LocateError as error:
        click.secho(f"Could not list processes: {error}", fg="red", err=True)
        raise SystemExit(1) from error

    if not processes:
        click.secho("No running editors found.", fg="yellow")
        return

    for process in processes:
        click.echo(f"{process.pid:>8}  {process.target}")
