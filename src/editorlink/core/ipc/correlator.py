"""Request/response correlation and event fan-out over a ``PeerLink``.

Many callers may have requests in flight on one link at the same time.
Each request gets a fresh id and its own expiry timer; responses are matched
by id in whatever order the editor sends them. Messages without an id are
events and go to every subscriber of their type.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from editorlink.core.errors import PeerDisconnectedError, RequestTimeoutError
from editorlink.core.ipc.contracts import PeerEvent, PeerRequest, PeerResponse, WireMessage
from editorlink.core.ipc.link import LinkState

if TYPE_CHECKING:
    from collections.abc import Callable

    from editorlink.core.ipc.link import PeerLink

    EventHandler = Callable[[PeerEvent], None]

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
WILDCARD = "*"


def new_request_id() -> str:
    return secrets.token_hex(8)


@dataclass
class PendingRequest:
    request_id: str
    command: str
    timeout: float
    future: asyncio.Future[PeerResponse]
    timer: asyncio.TimerHandle | None = None


class MessageCorrelator:
    """Matches responses to requests and fans out events for one link."""

    def __init__(
        self,
        link: PeerLink,
        *,
        default_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._link = link
        self._default_timeout = default_timeout
        self._id_factory = id_factory or new_request_id
        self._pending: dict[str, PendingRequest] = {}
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._closed = False
        self._detach = [
            link.on_frame(self._on_frame),
            link.on_state_change(self._on_state_change),
        ]

    @property
    def link(self) -> PeerLink:
        return self._link

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(
        self,
        command: str,
        parameters: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> PeerResponse:
        """Send *command* and wait for its response.

        Raises:
            RequestTimeoutError: If no response arrives within *timeout*.
            PeerDisconnectedError: If the link is down or drops before a response.
        """
        if self._closed or not self._link.is_connected:
            msg = f"Cannot send {command}: link is not connected"
            raise PeerDisconnectedError(msg)

        loop = asyncio.get_running_loop()
        effective_timeout = self._default_timeout if timeout is None else timeout
        request_id = self._allocate_id()
        pending = PendingRequest(
            request_id=request_id,
            command=command,
            timeout=effective_timeout,
            future=loop.create_future(),
        )
        self._pending[request_id] = pending
        pending.timer = loop.call_later(effective_timeout, self._expire, request_id)

        request = PeerRequest(id=request_id, command=command, parameters=parameters or {})
        logger.debug("-> %s id=%s", command, request_id)
        try:
            await self._link.send(request.to_bytes())
            return await pending.future
        finally:
            self._discard(pending)

    def _allocate_id(self) -> str:
        request_id = self._id_factory()
        while request_id in self._pending:
            logger.debug("Request id %s already outstanding; regenerating", request_id)
            request_id = self._id_factory()
        return request_id

    def _discard(self, pending: PendingRequest) -> None:
        if pending.timer is not None:
            pending.timer.cancel()
        if self._pending.get(pending.request_id) is pending:
            del self._pending[pending.request_id]
        future = pending.future
        if future.done() and not future.cancelled():
            # Mark a disconnect failure as retrieved when send() raised first.
            future.exception()

    def _expire(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.future.done():
            return
        logger.warning("Request %s (%s) timed out", request_id, pending.command)
        pending.future.set_exception(RequestTimeoutError(pending.command, pending.timeout))

    def _on_frame(self, frame: bytes) -> None:
        try:
            message = WireMessage.model_validate_json(frame)
        except ValidationError:
            logger.warning("Dropping malformed message (%d bytes)", len(frame))
            return

        if message.id is not None:
            self._resolve(message.id, message)
        elif message.type is not None:
            self._fan_out(PeerEvent.from_wire(message))
        else:
            logger.debug("Dropping message with neither id nor type")

    def _resolve(self, request_id: str, message: WireMessage) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            logger.debug("Ignoring response for unknown or completed request %s", request_id)
            return
        if pending.timer is not None:
            pending.timer.cancel()
        if not pending.future.done():
            logger.debug("<- %s id=%s success=%s", pending.command, request_id, message.success)
            pending.future.set_result(PeerResponse.from_wire(message))

    def subscribe(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        """Call *handler* for every event of *event_type* (``"*"`` for all).

        Returns a callable that removes the subscription.
        """
        self._subscribers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def _fan_out(self, event: PeerEvent) -> None:
        handlers = [
            *self._subscribers.get(event.type, ()),
            *self._subscribers.get(WILDCARD, ()),
        ]
        if not handlers:
            logger.debug("No subscribers for event %s", event.type)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.type)

    def _on_state_change(self, state: LinkState) -> None:
        if state is LinkState.DISCONNECTED:
            self._fail_all("link closed")

    def _fail_all(self, reason: str) -> None:
        pending_requests = list(self._pending.values())
        self._pending.clear()
        if pending_requests:
            logger.info("Failing %d pending request(s): %s", len(pending_requests), reason)
        for pending in pending_requests:
            if pending.timer is not None:
                pending.timer.cancel()
            if not pending.future.done():
                msg = f"Link closed before {pending.command} completed ({reason})"
                pending.future.set_exception(PeerDisconnectedError(msg))

    def close(self) -> None:
        """Detach from the link and fail every pending request. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for detach in self._detach:
            detach()
        self._detach.clear()
        self._subscribers.clear()
        self._fail_all("correlator closed")


__all__ = [
    "DEFAULT_REQUEST_TIMEOUT",
    "WILDCARD",
    "MessageCorrelator",
    "PendingRequest",
    "new_request_id",
]
