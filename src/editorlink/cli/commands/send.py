"""Raw editor command."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import click

from editorlink.core.errors import EditorLinkError
from editorlink.core.registry import ConnectionRegistry

if TYPE_CHECKING:
    from editorlink.core.config import EditorLinkConfig
    from editorlink.core.ipc.contracts import PeerResponse


def parse_parameters(pairs: tuple[str, ...]) -> dict[str, Any]:
    """Turn ``key=value`` pairs into a parameters object.

    Values are decoded as JSON when possible, so ``-p index=2`` sends a number
    and ``-p path=Assets/Main.unity`` sends a string.
    """
    parameters: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            msg = f"Expected key=value, got {pair!r}"
            raise click.BadParameter(msg, param_hint="-p")
        try:
            parameters[key] = json.loads(raw)
        except json.JSONDecodeError:
            parameters[key] = raw
    return parameters


async def _send(
    config: EditorLinkConfig,
    target: str,
    command: str,
    parameters: dict[str, Any],
    timeout: float | None,
) -> PeerResponse:
    registry = ConnectionRegistry(config)
    try:
        await registry.connect(target)
        return await registry.send_command(command, parameters, target=target, timeout=timeout)
    finally:
        await registry.shutdown()


@click.command()
@click.argument("target")
@click.argument("command")
@click.option("-p", "--param", "params", multiple=True, help="Command parameter as key=value")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the answer")
@click.pass_obj
def send(
    config: EditorLinkConfig,
    target: str,
    command: str,
    params: tuple[str, ...],
    timeout: float | None,
) -> None:
    """Send COMMAND to the editor that has TARGET open and print the response."""
    parameters = parse_parameters(params)
    try:
        response = asyncio.run(_send(config, target, command, parameters, timeout))
    except EditorLinkError as error:
        click.secho(f"[{error.code}] {error}", fg="red", err=True)
        raise SystemExit(1) from error

    click.echo(json.dumps(response.model_dump(exclude_none=True), indent=2))
    if not response.success:
        raise SystemExit(2)
