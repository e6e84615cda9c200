"""Per-torrent peer discovery.

A `DiscoveryCoordinator` merges the peers found by a DHT overlay and by a
tracker engine into one ``on_peer`` stream for a single torrent.

The DHT is either owned (constructed, listened on and destroyed by the
coordinator), borrowed from the caller (never destroyed here) or disabled.
Tracker failures are downgraded to ``on_warning`` events so that discovery
through the DHT carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from btclient.core.identifier import ContentID, TorrentDescriptor
from btclient.discovery.types import DHTEngine
from btclient.utils.events import EventChannel
from btclient.utils.exceptions import (
    ConfigurationError,
    DiscoveryWarning,
    ValidationError,
)
from btclient.utils.logging_config import get_logger
from btclient.utils.tasks import BackgroundTaskGroup

if TYPE_CHECKING:  # pragma: no cover
    from btclient.discovery.types import DHTFactory, TrackerEngine, TrackerFactory
    from btclient.models import PeerAddress
    from btclient.utils.blocklist import IPBlocklist


class DiscoverySourceKind(str, Enum):
    """Who manages the DHT used for discovery."""

    OWNED_DHT = "owned_dht"
    EXTERNAL_DHT = "external_dht"
    DISABLED = "disabled"


@dataclass(frozen=True)
class DiscoverySource:
    """DHT handle together with its ownership."""

    kind: DiscoverySourceKind
    handle: DHTEngine | None = None

    @classmethod
    def owned(cls, handle: DHTEngine) -> DiscoverySource:
        return cls(DiscoverySourceKind.OWNED_DHT, handle)

    @classmethod
    def external(cls, handle: DHTEngine) -> DiscoverySource:
        return cls(DiscoverySourceKind.EXTERNAL_DHT, handle)

    @classmethod
    def disabled(cls) -> DiscoverySource:
        return cls(DiscoverySourceKind.DISABLED)

    @property
    def is_owned(self) -> bool:
        return self.kind is DiscoverySourceKind.OWNED_DHT

    @property
    def enabled(self) -> bool:
        return self.handle is not None


class CoordinatorState(str, Enum):
    """Coordinator lifecycle: CREATED → STARTED → STOPPED."""

    CREATED = "created"
    STARTED = "started"
    STOPPED = "stopped"


class DiscoveryCoordinator:
    """Merges DHT and tracker peer discovery for one torrent.

    Events:
        on_peer(address: PeerAddress)
        on_warning(warning: DiscoveryWarning)
        on_dht_announce()
    """

    def __init__(
        self,
        target: ContentID | TorrentDescriptor,
        peer_id: bytes,
        port: int | None = None,
        *,
        dht: bool | DHTEngine = False,
        tracker: bool = True,
        dht_port: int | None = None,
        node_id: bytes | None = None,
        dht_factory: DHTFactory | None = None,
        tracker_factory: TrackerFactory | None = None,
        blocklist: IPBlocklist | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize coordinator.

        Args:
            target: Bare content identifier or full descriptor
            peer_id: 20-byte peer id handed to the tracker engine
            port: Local listen port, if already known
            dht: ``True`` to own a DHT, ``False`` to disable, or an engine to borrow
            tracker: Enable tracker discovery
            dht_port: Port for an owned DHT (None = engine chooses)
            node_id: Node id for an owned DHT
            dht_factory: Builds the owned DHT engine
            tracker_factory: Builds the tracker engine
            blocklist: Peers whose host is blocked are dropped
            logger: Injected logger

        Raises:
            ConfigurationError: If an owned DHT or a tracker is requested
                without a factory to build it

        """
        if isinstance(target, ContentID):
            target = TorrentDescriptor(target)
        self.descriptor = target
        self.peer_id = peer_id
        self.port = port
        self.dht_port = dht_port
        self.node_id = node_id
        self.blocklist = blocklist
        self.logger = logger or get_logger("discovery")

        if dht is True:
            if dht_factory is None:
                msg = "DHT discovery requested but no DHT engine factory is available"
                raise ConfigurationError(msg)
            self.source = DiscoverySource(DiscoverySourceKind.OWNED_DHT)
        elif dht is False or dht is None:
            self.source = DiscoverySource.disabled()
        else:
            self.source = DiscoverySource.external(dht)
        self._dht_factory = dht_factory

        if tracker and tracker_factory is None:
            msg = "Tracker discovery requested but no tracker factory is available"
            raise ConfigurationError(msg)
        self.tracker_enabled = tracker
        self._tracker_factory = tracker_factory
        self.tracker: TrackerEngine | None = None
        self.uploaded = 0
        self.downloaded = 0

        self.state = CoordinatorState.CREATED
        self._lookup_issued = False
        self._unsubscribers: list[Callable[[], None]] = []
        self._tasks = BackgroundTaskGroup()

        self.on_peer = EventChannel("peer", self.logger)
        self.on_warning = EventChannel("warning", self.logger)
        self.on_dht_announce = EventChannel("dht_announce", self.logger)

    @property
    def content_id(self) -> ContentID:
        return self.descriptor.content_id

    @property
    def info_hash(self) -> bytes:
        return self.descriptor.info_hash

    @property
    def dht(self) -> DHTEngine | None:
        return self.source.handle

    @property
    def stopped(self) -> bool:
        return self.state is CoordinatorState.STOPPED

    async def start(self) -> None:
        """Subscribe to the DHT, start an owned DHT and the tracker.

        Starting twice, or after ``stop``, has no effect.
        """
        if self.state is not CoordinatorState.CREATED:
            self.logger.debug(
                "Ignoring start of %s coordinator for %s",
                self.state.value,
                self.content_id,
            )
            return
        self.state = CoordinatorState.STARTED

        if self.source.is_owned:
            await self._start_owned_dht()
            if self.stopped:
                return
        if self.dht is not None:
            self._subscribe_dht(self.dht)

        if self.tracker_enabled and self.port is not None:
            await self._start_tracker()

    async def _start_owned_dht(self) -> None:
        assert self._dht_factory is not None
        dht = self._dht_factory(node_id=self.node_id or b"")
        self.source = DiscoverySource.owned(dht)
        try:
            await dht.listen(self.dht_port)
        except Exception as e:
            self._warn("dht", f"DHT failed to listen: {e}", e)

    def _subscribe_dht(self, dht: DHTEngine) -> None:
        self._unsubscribers.append(dht.on_peer.subscribe(self._on_dht_peer))
        if dht.ready:
            self._maybe_lookup()
        else:
            self._unsubscribers.append(dht.on_ready.once(self._maybe_lookup))

    def _on_dht_peer(self, address: PeerAddress, info_hash: bytes | None = None) -> None:
        if info_hash is not None and info_hash != self.info_hash:
            return
        self._forward_peer(address)

    def _forward_peer(self, address: PeerAddress) -> None:
        if self.stopped:
            return
        if self.blocklist is not None and self.blocklist.is_blocked(address.host):
            self.logger.debug("Dropping blocked peer %s", address)
            return
        self.on_peer.emit(address)

    def _maybe_lookup(self) -> None:
        """Issue the DHT lookup once the DHT is ready and the port is known."""
        dht = self.dht
        if (
            self._lookup_issued
            or self.stopped
            or dht is None
            or not dht.ready
            or self.port is None
        ):
            return
        self._lookup_issued = True
        self._tasks.create(
            self._lookup_and_announce(dht, self.port),
            name=f"dht-lookup-{self.content_id.hex[:8]}",
        )

    async def _lookup_and_announce(self, dht: DHTEngine, port: int) -> None:
        # In-flight calls are not cancelled by stop(); their results are dropped.
        try:
            await dht.lookup(self.info_hash)
            if self.stopped:
                return
            await dht.announce(self.info_hash, port)
        except Exception as e:
            if not self.stopped:
                self._warn("dht", f"DHT lookup/announce failed: {e}", e)
            return
        if not self.stopped:
            self.logger.debug("DHT announce complete for %s", self.content_id)
            self.on_dht_announce.emit()

    async def _start_tracker(self) -> None:
        assert self._tracker_factory is not None
        assert self.port is not None
        if self.stopped:
            return
        try:
            tracker = self._tracker_factory(
                peer_id=self.peer_id,
                port=self.port,
                descriptor=self.descriptor,
                logger=self.logger.getChild("tracker"),
            )
        except Exception as e:
            self._warn("tracker", f"Failed to create tracker client: {e}", e)
            return
        tracker.uploaded = self.uploaded
        tracker.downloaded = self.downloaded
        self.tracker = tracker
        self._unsubscribers.append(tracker.on_peer.subscribe(self._forward_peer))
        self._unsubscribers.append(tracker.on_error.subscribe(self._on_tracker_error))
        try:
            await tracker.start()
        except Exception as e:
            self._on_tracker_error(e)

    def _on_tracker_error(self, error: Any) -> None:
        if self.stopped:
            return
        cause = error if isinstance(error, BaseException) else None
        self._warn("tracker", f"Tracker error: {error}", cause)

    def _warn(self, source: str, message: str, cause: BaseException | None) -> None:
        warning = DiscoveryWarning(
            message, source, cause, {"info_hash": self.content_id.hex}
        )
        self.logger.warning("%s (%s)", message, self.content_id)
        self.on_warning.emit(warning)

    def set_port(self, port: int) -> None:
        """Record the local listen port once it is known.

        Creates the tracker client if it was waiting for a port, and issues
        the DHT lookup if the DHT is already ready.
        """
        self.port = port
        if self.state is not CoordinatorState.STARTED:
            return
        if self.tracker_enabled and self.tracker is None:
            self._tasks.create(
                self._start_tracker(), name=f"tracker-start-{self.content_id.hex[:8]}"
            )
        self._maybe_lookup()

    def update_metadata(self, descriptor: TorrentDescriptor) -> None:
        """Adopt the full descriptor once metadata is available.

        The running tracker client is updated in place rather than recreated.

        Raises:
            ValidationError: If the descriptor names another torrent

        """
        if descriptor.content_id != self.content_id:
            msg = "Metadata does not belong to this torrent"
            raise ValidationError(
                msg,
                {"expected": self.content_id.hex, "got": descriptor.content_id.hex},
            )
        self.descriptor = descriptor
        if self.tracker is not None and descriptor.length is not None:
            self.tracker.torrent_length = descriptor.length

    def record_transfer(self, uploaded: int, downloaded: int) -> None:
        """Record the torrent's byte totals for the next tracker announce."""
        self.uploaded = uploaded
        self.downloaded = downloaded
        if self.tracker is not None:
            self.tracker.uploaded = uploaded
            self.tracker.downloaded = downloaded

    async def stop(self) -> None:
        """Stop the tracker loop and destroy the DHT if it is owned.

        Stopping twice has no effect; a borrowed DHT is left untouched.
        """
        if self.state is CoordinatorState.STOPPED:
            return
        was_started = self.state is CoordinatorState.STARTED
        self.state = CoordinatorState.STOPPED
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if not was_started:
            return

        try:
            if self.tracker is not None:
                await self.tracker.stop()
        finally:
            if self.source.is_owned and self.dht is not None:
                await self.dht.destroy()
        self.logger.debug("Discovery stopped for %s", self.content_id)
