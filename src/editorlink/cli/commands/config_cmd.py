"""Configuration inspection command."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from pathlib import Path

    from editorlink.core.config import EditorLinkConfig


@click.command(name="config")
@click.option("--init", "init_file", is_flag=True, help="Write the defaults if no file exists")
@click.pass_context
def config_cmd(ctx: click.Context, init_file: bool) -> None:
    """Show the effective configuration and where it is read from."""
    config: EditorLinkConfig = ctx.obj
    path: Path = ctx.meta["config_path"]

    if init_file:
        if path.exists():
            click.secho(f"Config already exists: {path}", fg="yellow")
        else:
            asyncio.run(config.save(path))
            click.secho(f"Wrote {path}", fg="green")

    source = str(path) if path.exists() else f"{path} (not found, using defaults)"
    click.echo(f"# {source}")
    click.echo(config.to_toml(), nl=False)
