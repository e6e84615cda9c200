"""BitTorrent client orchestration.

`Client` wires the readiness barrier, the torrent registry, per-torrent
discovery and the lifecycle orchestrator together::

    async with Client(ClientConfig(torrent_port=6881)) as client:
        entry = await client.add("magnet:?xt=urn:btih:...")
        entry.on_peer.subscribe(print)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Iterable

from btclient.core.identifier import (
    ContentID,
    TorrentDescriptor,
    parse_identifier,
    resolve,
)
from btclient.discovery.coordinator import DiscoveryCoordinator, DiscoverySource
from btclient.discovery.types import DHTEngine
from btclient.models import ClientConfig
from btclient.session.bootstrap import acquire_listen_port, bring_up_dht
from btclient.session.lifecycle import LifecycleOrchestrator
from btclient.session.readiness import ClientState, ReadinessBarrier
from btclient.session.registry import TorrentEntry, TorrentRegistry
from btclient.utils.blocklist import IPBlocklist
from btclient.utils.di import DIContainer, default_container
from btclient.utils.events import EventChannel
from btclient.utils.exceptions import ClientStateError, ConfigurationError
from btclient.utils.logging_config import LoggingContext
from btclient.utils.metrics import MetricsAggregator, seed_ratio
from btclient.utils.tasks import BackgroundTaskGroup


class Client:
    """Manages torrents, shared discovery infrastructure and their lifecycle.

    Events:
        on_error(error, entry | None)
        on_listening(port, entry)
        on_torrent(entry)           torrent metadata is available
        on_warning(warning, entry)
        on_add_torrent(entry)
        on_remove_torrent(entry)
        on_peer(address, entry)
        on_ready()                  bootstrap finished
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        dht: DHTEngine | None = None,
        container: DIContainer | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize client.

        Args:
            config: Client configuration (defaults to ``ClientConfig()``)
            dht: Externally managed DHT engine to borrow; never destroyed here
            container: Factories for collaborators (defaults to `default_container`)
            logger: Injected logger

        Raises:
            ConfigurationError: If DHT is enabled but no DHT engine is available

        """
        self.config = config or ClientConfig()
        self.container = container or default_container(self.config)
        self.logger = logger or self.container.logger_factory("client")

        self.peer_id = self.config.peer_id
        self.node_id = self.config.node_id
        self.blocklist = IPBlocklist(self.config.blocklist, self.logger.getChild("blocklist"))
        self.discovery_source = self._create_discovery_source(dht)

        self.state = ClientState.BOOTSTRAPPING
        self._torrent_port: int | None = self.config.torrent_port
        self.registry = TorrentRegistry()
        self.metrics = MetricsAggregator(
            window=self.config.observability.rate_window,
            clock=self.container.clock,
            enable_prometheus=self.config.observability.enable_metrics,
            logger=self.logger.getChild("metrics"),
        )
        self.lifecycle = LifecycleOrchestrator(self.logger.getChild("lifecycle"))
        self.barrier = self._create_barrier()
        self._tasks = BackgroundTaskGroup()
        self._bootstrap_task: asyncio.Task | None = None
        self._destroy_task: asyncio.Task | None = None

        self.on_error = EventChannel("error", self.logger)
        self.on_listening = EventChannel("listening", self.logger)
        self.on_torrent = EventChannel("torrent", self.logger)
        self.on_warning = EventChannel("warning", self.logger)
        self.on_add_torrent = EventChannel("add_torrent", self.logger)
        self.on_remove_torrent = EventChannel("remove_torrent", self.logger)
        self.on_peer = EventChannel("peer", self.logger)
        self.on_ready = EventChannel("ready", self.logger)

        self.barrier.on_ready.subscribe(self._on_bootstrap_ready)
        self.barrier.on_error.subscribe(lambda err: self.on_error.emit(err, None))

    def _create_discovery_source(self, dht: DHTEngine | None) -> DiscoverySource:
        if dht is not None:
            return DiscoverySource.external(dht)
        if self.config.dht is False:
            return DiscoverySource.disabled()
        factory = self.container.dht_factory
        if factory is None:
            if self.config.dht is True:
                msg = "DHT enabled but no DHT engine factory is registered"
                raise ConfigurationError(msg)
            return DiscoverySource.disabled()
        return DiscoverySource.owned(factory(node_id=self.node_id))

    def _create_barrier(self) -> ReadinessBarrier:
        barrier = ReadinessBarrier(self.logger.getChild("readiness"))
        if self.config.torrent_port is None:
            allocator = self.container.port_allocator or acquire_listen_port
            interface = self.config.listen_interface
            barrier.add_task("port", lambda: allocator(interface))
        if self.discovery_source.is_owned:
            dht = self.discovery_source.handle
            assert dht is not None
            barrier.add_task(
                "dht",
                lambda: bring_up_dht(
                    dht, self.config.dht_port, self.config.dht_bootstrap_timeout
                ),
            )
        return barrier

    # Properties

    @property
    def dht(self) -> DHTEngine | None:
        return self.discovery_source.handle

    @property
    def torrent_port(self) -> int | None:
        return self._torrent_port

    @property
    def torrents(self) -> list[TorrentEntry]:
        """Registered torrents in insertion order."""
        return self.registry.snapshot()

    @property
    def ratio(self) -> float:
        """Uploaded / downloaded over all torrents; 0 when nothing was downloaded."""
        return seed_ratio(self.registry)

    @property
    def download_speed(self) -> float:
        return self.metrics.download_speed

    @property
    def upload_speed(self) -> float:
        return self.metrics.upload_speed

    @property
    def peer_id_hex(self) -> str:
        return self.peer_id.hex()

    @property
    def node_id_hex(self) -> str:
        return self.node_id.hex()

    # Bootstrap

    def _ensure_bootstrap(self) -> asyncio.Task:
        if self._bootstrap_task is None:
            self._bootstrap_task = asyncio.create_task(
                self._bootstrap(), name="client-bootstrap"
            )
            # Failures reach callers through start() and the barrier queue.
            self._bootstrap_task.add_done_callback(
                lambda t: t.cancelled() or t.exception()
            )
        return self._bootstrap_task

    async def _bootstrap(self) -> None:
        with LoggingContext("client_start", self.logger):
            await self.barrier.run()

    def _on_bootstrap_ready(self, results: dict[str, Any]) -> None:
        if self.state is not ClientState.BOOTSTRAPPING:
            return
        if "port" in results:
            self._torrent_port = results["port"]
        self.state = ClientState.READY
        self.logger.info(
            "Client ready (port=%s, dht=%s)",
            self._torrent_port,
            self.discovery_source.kind.value,
        )
        self.on_ready.emit()

    async def start(self) -> None:
        """Run bootstrap and wait for it.

        Raises:
            BootstrapError: If a bootstrap task failed

        """
        if self.state in (ClientState.DESTROYING, ClientState.DESTROYED):
            msg = f"Cannot start a client in state {self.state.value}"
            raise ClientStateError(msg)
        await asyncio.shield(self._ensure_bootstrap())

    async def __aenter__(self) -> Client:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.destroy()

    # Torrents

    def get(self, identifier: Any) -> TorrentEntry | None:
        """Return the registered torrent for ``identifier``, or None."""
        return self.registry.get(resolve(identifier))

    async def add(
        self,
        identifier: Any,
        *,
        on_torrent: Callable[[TorrentEntry], Any] | None = None,
        announce: Iterable[str] | None = None,
    ) -> TorrentEntry:
        """Add a torrent.

        Calls made before bootstrap has finished are queued and applied in
        order once it has.

        Args:
            identifier: Any supported torrent identifier
            on_torrent: Called once when the torrent's metadata is available
            announce: Extra tracker URLs

        Raises:
            ValidationError: If the identifier is unsupported or malformed
            DuplicateTorrentError: If the torrent is already registered
            ClientStateError: If the client is being destroyed
            BootstrapError: If bootstrap failed

        """
        descriptor = parse_identifier(identifier).descriptor
        if announce:
            descriptor = descriptor.with_announce(announce)
        if self.state in (ClientState.DESTROYING, ClientState.DESTROYED):
            msg = "Cannot add torrents to a destroyed client"
            raise ClientStateError(msg, {"info_hash": descriptor.content_id.hex})
        self._ensure_bootstrap()
        return await self.barrier.submit(lambda: self._add_now(descriptor, on_torrent))

    def _add_now(
        self,
        descriptor: TorrentDescriptor,
        on_torrent: Callable[[TorrentEntry], Any] | None,
    ) -> TorrentEntry:
        if self.state is not ClientState.READY:
            msg = f"Cannot add torrents in state {self.state.value}"
            raise ClientStateError(msg, {"info_hash": descriptor.content_id.hex})

        with LoggingContext(
            "torrent_add", self.logger, info_hash=descriptor.content_id.hex
        ):
            entry_logger = self.logger.getChild(f"torrent.{descriptor.content_id.hex[:8]}")
            coordinator = DiscoveryCoordinator(
                descriptor,
                self.peer_id,
                self._torrent_port,
                dht=self.dht if self.dht is not None else False,
                tracker=self.config.trackers
                and self.container.tracker_factory is not None,
                tracker_factory=self.container.tracker_factory,
                blocklist=self.blocklist,
                logger=entry_logger.getChild("discovery"),
            )
            entry = TorrentEntry(descriptor, coordinator, logger=entry_logger)
            self.registry.add(entry)
            if self.container.swarm_factory is not None:
                try:
                    entry.swarm = self.container.swarm_factory(entry)
                except Exception:
                    self.registry.pop(entry.content_id)
                    raise
            self._wire(entry, on_torrent)

        self.on_add_torrent.emit(entry)
        self._tasks.create(entry.start(), name=f"torrent-start-{entry.content_id.hex[:8]}")
        return entry

    def _wire(
        self,
        entry: TorrentEntry,
        on_torrent: Callable[[TorrentEntry], Any] | None,
    ) -> None:
        entry.on_error.subscribe(lambda err: self.on_error.emit(err, entry))
        entry.on_listening.subscribe(lambda port: self.on_listening.emit(port, entry))
        entry.on_ready.subscribe(lambda: self.on_torrent.emit(entry))
        entry.on_warning.subscribe(lambda warning: self.on_warning.emit(warning, entry))
        entry.on_peer.subscribe(lambda address: self.on_peer.emit(address, entry))
        entry.on_download.subscribe(self.metrics.record_download)
        entry.on_upload.subscribe(self.metrics.record_upload)
        if on_torrent is not None:
            entry.on_ready.once(lambda: on_torrent(entry))

    async def remove(self, identifier: Any) -> None:
        """Remove a torrent and wait for its teardown.

        Raises:
            NotFoundError: If the torrent is not registered
            Exception: Whatever its teardown raised

        """
        content_id: ContentID = resolve(identifier)
        entry = self.registry.require(content_id)
        with LoggingContext("torrent_remove", self.logger, info_hash=content_id.hex):
            self.registry.pop(content_id)
            self.on_remove_torrent.emit(entry)
            await self.lifecycle.teardown_entry(entry)

    # Teardown

    async def destroy(self) -> None:
        """Tear down every torrent and the owned DHT concurrently.

        Calling again waits for the same teardown.

        Raises:
            TeardownError: If any teardown task failed

        """
        if self._destroy_task is None:
            self._destroy_task = asyncio.create_task(
                self._destroy(), name="client-destroy"
            )
        await asyncio.shield(self._destroy_task)

    async def _destroy(self) -> None:
        self.state = ClientState.DESTROYING
        self.barrier.fail(ClientStateError("Client destroyed before it was ready"))
        if self._bootstrap_task is not None and not self._bootstrap_task.done():
            self._bootstrap_task.cancel()
        if self._bootstrap_task is not None:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._bootstrap_task
        await self._tasks.cancel_and_wait()

        owned_dht = self.dht if self.discovery_source.is_owned else None
        try:
            with LoggingContext("client_destroy", self.logger):
                await self.lifecycle.destroy_all(self.registry, owned_dht)
        finally:
            self.state = ClientState.DESTROYED

    def __repr__(self) -> str:
        return (
            f"Client(state={self.state.value}, torrents={len(self.registry)}, "
            f"port={self._torrent_port})"
        )
