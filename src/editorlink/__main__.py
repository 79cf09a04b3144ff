"""CLI entry point for editorlink."""

from __future__ import annotations

# Python version check - must be before any imports that use 3.12+ syntax.
import sys

if sys.version_info < (3, 12):  # noqa: UP036
    print("Error: editorlink requires Python 3.12 or higher.")
    print(
        "You are running Python {}.{}".format(  # noqa: UP032
            sys.version_info.major, sys.version_info.minor
        )
    )
    sys.exit(1)

import tomllib  # noqa: E402
from pathlib import Path  # noqa: E402

import click  # noqa: E402
from pydantic import ValidationError  # noqa: E402

from editorlink.cli.commands.config_cmd import config_cmd  # noqa: E402
from editorlink.cli.commands.locate import locate  # noqa: E402
from editorlink.cli.commands.projects import discover, endpoint, status  # noqa: E402
from editorlink.cli.commands.send import send  # noqa: E402
from editorlink.core.config import EditorLinkConfig  # noqa: E402
from editorlink.core.paths import get_config_path  # noqa: E402
from editorlink.log_setup import setup_cli_logging  # noqa: E402
from editorlink.version import get_editorlink_version  # noqa: E402


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.toml (defaults to the user config directory)",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, verbose: bool, config_path: Path | None) -> None:
    """Discover, connect to, and drive running Unity Editor instances."""
    if version:
        click.echo(f"editorlink {get_editorlink_version()}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    setup_cli_logging(verbose)
    path = config_path or get_config_path()
    try:
        config = EditorLinkConfig.load(path)
    except (ValidationError, tomllib.TOMLDecodeError) as error:
        msg = f"Invalid config {path}: {error}"
        raise click.ClickException(msg) from error
    ctx.obj = config
    ctx.meta["config_path"] = path


cli.add_command(locate)
cli.add_command(discover)
cli.add_command(endpoint)
cli.add_command(status)
cli.add_command(send)
cli.add_command(config_cmd)


if __name__ == "__main__":
    cli()
