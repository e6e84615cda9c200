"""Collaborator protocols consumed by the discovery and session layers.

The DHT engine, the tracker engine and the swarm (wire protocol) engine are
external; the client only talks to them through these narrow interfaces.
Engines expose their events as `EventChannel` attributes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover
    from btclient.core.identifier import TorrentDescriptor
    from btclient.utils.events import EventChannel


@runtime_checkable
class DHTEngine(Protocol):
    """Distributed hash table overlay.

    Events:
        on_peer(address: PeerAddress, info_hash: bytes)
        on_ready()
        on_listening(port: int)
    """

    ready: bool
    on_peer: EventChannel
    on_ready: EventChannel
    on_listening: EventChannel

    async def listen(self, port: int | None = None) -> None:
        """Start listening; ``None`` lets the engine choose a port."""
        ...

    async def lookup(self, info_hash: bytes) -> None:
        """Search the overlay for peers of ``info_hash``."""
        ...

    async def announce(self, info_hash: bytes, port: int) -> None:
        """Announce that this node serves ``info_hash`` on ``port``."""
        ...

    async def destroy(self) -> None:
        """Close sockets and stop all timers."""
        ...


@runtime_checkable
class TrackerEngine(Protocol):
    """Tracker client for one torrent.

    Events:
        on_peer(address: PeerAddress)
        on_error(error: Exception)
    """

    torrent_length: int | None
    uploaded: int
    downloaded: int
    on_peer: EventChannel
    on_error: EventChannel

    async def start(self) -> None:
        """Send the initial announce and schedule periodic ones."""
        ...

    async def stop(self) -> None:
        """Cancel the announce loop."""
        ...


@runtime_checkable
class SwarmHandle(Protocol):
    """Opaque per-torrent wire-protocol and storage handle."""

    async def close(self) -> None:
        """Release connections and storage."""
        ...


class DHTFactory(Protocol):
    def __call__(self, *, node_id: bytes, **kwargs: Any) -> DHTEngine: ...


class TrackerFactory(Protocol):
    def __call__(
        self,
        *,
        peer_id: bytes,
        port: int,
        descriptor: TorrentDescriptor,
        **kwargs: Any,
    ) -> TrackerEngine: ...


class SwarmFactory(Protocol):
    def __call__(self, entry: Any) -> SwarmHandle: ...
