"""Duplex framed link to one editor instance.

A ``PeerLink`` owns at most one open stream to its rendezvous path, a read
task that turns inbound bytes into frames, and a reconnect task that keeps
retrying after an unexpected close. Subscribers are notified exactly once
per established connection when it goes away.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from editorlink.core.errors import FramingError, PeerDisconnectedError, TransportConnectError
from editorlink.core.ipc.backoff import ReconnectPolicy
from editorlink.core.ipc.framing import LengthPrefixedCodec
from editorlink.core.ipc.transports import READ_CHUNK_BYTES, open_stream

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from editorlink.core.ipc.framing import FrameCodec

    FrameCallback = Callable[[bytes], None]
    StateCallback = Callable[["LinkState"], None]
    StreamOpener = Callable[
        [str],
        Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]],
    ]

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0


class LinkState(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class PeerLink:
    """Framed byte stream to a single editor, with owned reconnection.

    Usage::

        link = PeerLink(rendezvous_path(target))
        link.on_frame(handle_frame)
        link.on_state_change(handle_state)
        if not await link.connect():
            link.start_reconnecting()
        ...
        await link.close()
    """

    def __init__(
        self,
        path: str,
        *,
        codec: FrameCodec | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        policy: ReconnectPolicy | None = None,
        opener: StreamOpener | None = None,
    ) -> None:
        self._path = path
        self._codec = codec or LengthPrefixedCodec()
        self._connect_timeout = connect_timeout
        self._policy = policy or ReconnectPolicy()
        self._opener = opener or open_stream
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._frame_callbacks: list[FrameCallback] = []
        self._state_callbacks: list[StateCallback] = []
        self._closed = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_connected(self) -> bool:
        """Whether the link currently holds an open stream."""
        return self._writer is not None and not self._writer.is_closing()

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def on_frame(self, callback: FrameCallback) -> Callable[[], None]:
        """Register *callback* for every inbound frame; returns an unsubscribe callable."""
        self._frame_callbacks.append(callback)
        return lambda: self._remove(self._frame_callbacks, callback)

    def on_state_change(self, callback: StateCallback) -> Callable[[], None]:
        """Register *callback* for connect/disconnect transitions."""
        self._state_callbacks.append(callback)
        return lambda: self._remove(self._state_callbacks, callback)

    @staticmethod
    def _remove(callbacks: list, callback: object) -> None:
        with contextlib.suppress(ValueError):
            callbacks.remove(callback)

    async def open(self, timeout: float | None = None) -> None:
        """Open the stream once, racing the attempt against *timeout*.

        No handle is left open on failure.

        Raises:
            TransportConnectError: If the link is closed, the attempt times
                out, or the endpoint cannot be opened.
        """
        if self._closed:
            raise TransportConnectError(self._path, "link is closed")
        if self.is_connected:
            return

        effective_timeout = self._connect_timeout if timeout is None else timeout
        try:
            reader, writer = await asyncio.wait_for(
                self._opener(self._path),
                timeout=effective_timeout,
            )
        except TimeoutError as exc:
            detail = f"timed out after {effective_timeout:g}s"
            raise TransportConnectError(self._path, detail) from exc
        except (OSError, NotImplementedError) as exc:
            raise TransportConnectError(self._path, str(exc)) from exc

        if self._closed or self.is_connected:
            writer.close()
            if self._closed:
                raise TransportConnectError(self._path, "link closed while connecting")
            return

        self._established(reader, writer)

    async def connect(self, timeout: float | None = None) -> bool:
        """Like :meth:`open`, but report failure as ``False`` instead of raising."""
        try:
            await self.open(timeout)
        except TransportConnectError as exc:
            logger.debug("%s", exc)
            return False
        return True

    def _established(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._read_task = asyncio.create_task(
            self._read_loop(reader, writer),
            name=f"editorlink-read:{self._path}",
        )
        logger.info("Connected to editor at %s", self._path)
        self._notify(LinkState.CONNECTED)

    async def send(self, payload: bytes) -> None:
        """Write *payload* as exactly one frame.

        Raises:
            PeerDisconnectedError: If no stream is open or the write fails.
        """
        writer = self._writer
        if writer is None or writer.is_closing():
            msg = f"Link to {self._path} is not connected"
            raise PeerDisconnectedError(msg)

        frame = self._codec.encode(payload)
        try:
            writer.write(frame)
            await writer.drain()
        except (ConnectionError, OSError) as exc:
            self._connection_lost(writer, f"write failed: {exc}")
            msg = f"Link to {self._path} dropped while sending"
            raise PeerDisconnectedError(msg) from exc

    async def _read_loop(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        decoder = self._codec.decoder()
        reason = "closed by peer"
        try:
            while True:
                data = await reader.read(READ_CHUNK_BYTES)
                if not data:
                    break
                for frame in decoder.feed(data):
                    self._dispatch(frame)
        except FramingError as exc:
            logger.warning("Dropping link to %s: %s", self._path, exc)
            reason = str(exc)
        except (ConnectionError, OSError) as exc:
            reason = f"read failed: {exc}"
        self._connection_lost(writer, reason)

    def _dispatch(self, frame: bytes) -> None:
        for callback in list(self._frame_callbacks):
            try:
                callback(frame)
            except Exception:
                logger.exception("Frame callback failed on %s", self._path)

    def _notify(self, state: LinkState) -> None:
        for callback in list(self._state_callbacks):
            try:
                callback(state)
            except Exception:
                logger.exception("State callback failed on %s", self._path)

    def _connection_lost(self, writer: asyncio.StreamWriter, reason: str) -> None:
        if self._writer is not writer:
            return
        self._writer = None
        self._reader = None
        read_task = self._read_task
        self._read_task = None
        if read_task is not None and read_task is not asyncio.current_task():
            read_task.cancel()
        writer.close()
        logger.info("Link to %s lost (%s)", self._path, reason)
        self._notify(LinkState.DISCONNECTED)
        if not self._closed:
            self.start_reconnecting()

    def start_reconnecting(self) -> None:
        """Keep retrying the rendezvous in the background until connected or closed."""
        if self._closed or self.is_connected or self.is_reconnecting:
            return
        self._reconnect_task = asyncio.create_task(
            self._reconnect_loop(),
            name=f"editorlink-reconnect:{self._path}",
        )

    async def _reconnect_loop(self) -> None:
        attempt = 0
        try:
            while not self._closed and not self.is_connected:
                delay = self._policy.delay(attempt)
                logger.debug("Reconnecting to %s in %.1fs", self._path, delay)
                await asyncio.sleep(delay)
                if self._closed or self.is_connected:
                    return
                if await self.connect():
                    logger.info("Reconnected to %s after %d attempt(s)", self._path, attempt + 1)
                    return
                attempt += 1
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    async def close(self) -> None:
        """Close the stream and stop all background work. Idempotent."""
        if self._closed:
            return
        self._closed = True

        tasks = [task for task in (self._read_task, self._reconnect_task) if task is not None]
        self._read_task = None
        self._reconnect_task = None
        for task in tasks:
            if task is not asyncio.current_task():
                task.cancel()

        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is not None:
            writer.close()
            self._notify(LinkState.DISCONNECTED)

        for task in tasks:
            if task is asyncio.current_task():
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if writer is not None:
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()
        logger.debug("Link to %s closed", self._path)


__all__ = ["DEFAULT_CONNECT_TIMEOUT", "LinkState", "PeerLink"]
