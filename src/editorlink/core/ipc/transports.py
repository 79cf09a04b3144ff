"""Stream primitives for reaching an editor's rendezvous endpoint.

Unix domain sockets on POSIX, named pipes on Windows. Both produce a plain
``(StreamReader, StreamWriter)`` pair so the link above never branches on
platform.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

    ClientHandler = Callable[
        [asyncio.StreamReader, asyncio.StreamWriter],
        Coroutine[Any, Any, None],
    ]

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class ServerHandle:
    """Handle returned after starting a rendezvous server.

    Attributes:
        address: The socket path the server is bound to.
        close: Async callable to shut down the server gracefully.
    """

    address: str
    close: Callable[[], Coroutine[Any, Any, None]]


async def open_unix_stream(path: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a connection to the Unix socket at *path*."""
    reader, writer = await asyncio.open_unix_connection(path)
    logger.debug("Connected to Unix socket at %s", path)
    return reader, writer


async def open_pipe_stream(path: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a client connection to the Windows named pipe at *path*.

    Requires the proactor event loop, the default on Windows.
    """
    loop = asyncio.get_running_loop()
    create_pipe_connection = getattr(loop, "create_pipe_connection", None)
    if create_pipe_connection is None:
        msg = "Named pipes require the proactor event loop"
        raise NotImplementedError(msg)

    reader = asyncio.StreamReader(limit=READ_CHUNK_BYTES, loop=loop)
    protocol = asyncio.StreamReaderProtocol(reader, loop=loop)
    transport, _ = await create_pipe_connection(lambda: protocol, path)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    logger.debug("Connected to named pipe at %s", path)
    return reader, writer


async def open_stream(path: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open the platform stream for a rendezvous *path*."""
    if sys.platform == "win32":
        return await open_pipe_stream(path)
    return await open_unix_stream(path)


async def start_unix_server(path: str, handler: ClientHandler) -> ServerHandle:
    """Bind a Unix socket server at *path*, replacing any stale socket file.

    The editor plugin is the server in production; this exists for local
    fakes and integration tests.
    """
    with contextlib.suppress(FileNotFoundError):
        os.unlink(path)

    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    server = await asyncio.start_unix_server(handler, path=path)
    os.chmod(path, 0o600)
    logger.info("Unix socket server listening on %s", path)

    async def _close() -> None:
        server.close()
        await server.wait_closed()
        with contextlib.suppress(FileNotFoundError):
            os.unlink(path)
        logger.info("Unix socket server stopped")

    return ServerHandle(address=path, close=_close)


__all__ = [
    "READ_CHUNK_BYTES",
    "ClientHandler",
    "ServerHandle",
    "open_pipe_stream",
    "open_stream",
    "open_unix_stream",
    "start_unix_server",
]
