"""Rendezvous naming, framing, and request correlation for editor links."""

from __future__ import annotations

from editorlink.core.ipc.backoff import ReconnectPolicy
from editorlink.core.ipc.contracts import PeerEvent, PeerRequest, PeerResponse, WireMessage
from editorlink.core.ipc.correlator import MessageCorrelator
from editorlink.core.ipc.link import LinkState, PeerLink
from editorlink.core.ipc.rendezvous import endpoint_name, hash32, rendezvous_path

__all__ = [
    "LinkState",
    "MessageCorrelator",
    "PeerEvent",
    "PeerLink",
    "PeerRequest",
    "PeerResponse",
    "ReconnectPolicy",
    "WireMessage",
    "endpoint_name",
    "hash32",
    "rendezvous_path",
]
