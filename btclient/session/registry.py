"""Torrent entries and the registry that owns them."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterator

from btclient.core.identifier import ContentID, TorrentDescriptor
from btclient.utils.events import EventChannel
from btclient.utils.exceptions import DuplicateTorrentError, NotFoundError
from btclient.utils.logging_config import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from btclient.discovery.coordinator import DiscoveryCoordinator
    from btclient.discovery.types import SwarmHandle


class TorrentState(str, Enum):
    """Torrent entry lifecycle."""

    CREATED = "created"
    STARTED = "started"
    DESTROYING = "destroying"
    DESTROYED = "destroyed"


class TorrentEntry:
    """One active torrent: its discovery coordinator, swarm handle and counters.

    Events:
        on_error(error)
        on_listening(port)
        on_ready()                  metadata is available
        on_warning(warning)
        on_peer(address)
        on_download(nbytes)
        on_upload(nbytes)
    """

    def __init__(
        self,
        descriptor: TorrentDescriptor,
        coordinator: DiscoveryCoordinator,
        swarm: SwarmHandle | None = None,
        logger: logging.Logger | None = None,
    ):
        self.descriptor = descriptor
        self.coordinator = coordinator
        self.swarm = swarm
        self.uploaded = 0
        self.downloaded = 0
        self.state = TorrentState.CREATED
        self.ready = False
        self.logger = logger or get_logger("torrent")

        self.on_error = EventChannel("error", self.logger)
        self.on_listening = EventChannel("listening", self.logger)
        self.on_ready = EventChannel("ready", self.logger)
        self.on_warning = EventChannel("warning", self.logger)
        self.on_peer = EventChannel("peer", self.logger)
        self.on_download = EventChannel("download", self.logger)
        self.on_upload = EventChannel("upload", self.logger)

        coordinator.on_peer.subscribe(self.on_peer.emit)
        coordinator.on_warning.subscribe(self.on_warning.emit)

    @property
    def content_id(self) -> ContentID:
        return self.descriptor.content_id

    @property
    def info_hash(self) -> bytes:
        return self.descriptor.info_hash

    @property
    def name(self) -> str:
        return self.descriptor.name or self.content_id.hex

    @property
    def port(self) -> int | None:
        return self.coordinator.port

    async def start(self) -> None:
        """Start discovery; failures are reported on ``on_error``."""
        if self.state is not TorrentState.CREATED:
            return
        self.state = TorrentState.STARTED
        try:
            await self.coordinator.start()
        except Exception as e:
            self.logger.exception("Failed to start discovery for %s", self.name)
            self.on_error.emit(e)
            return
        if self.port is not None:
            self.on_listening.emit(self.port)
        if self.descriptor.has_metadata:
            self._mark_ready()

    def _mark_ready(self) -> None:
        if self.ready:
            return
        self.ready = True
        self.on_ready.emit()

    def set_metadata(self, descriptor: TorrentDescriptor) -> None:
        """Adopt metadata that arrived after the torrent was added."""
        self.coordinator.update_metadata(descriptor)
        self.descriptor = descriptor
        if descriptor.has_metadata and self.state is TorrentState.STARTED:
            self._mark_ready()

    def set_port(self, port: int) -> None:
        self.coordinator.set_port(port)
        if self.state is TorrentState.STARTED:
            self.on_listening.emit(port)

    def record_download(self, nbytes: int) -> None:
        """Account ``nbytes`` received from the swarm."""
        self.downloaded += nbytes
        self.coordinator.record_transfer(self.uploaded, self.downloaded)
        self.on_download.emit(nbytes)

    def record_upload(self, nbytes: int) -> None:
        """Account ``nbytes`` sent to the swarm."""
        self.uploaded += nbytes
        self.coordinator.record_transfer(self.uploaded, self.downloaded)
        self.on_upload.emit(nbytes)

    async def destroy(self) -> None:
        """Stop discovery and release the swarm handle.

        The swarm is closed even when stopping discovery fails; the first
        failure is re-raised.
        """
        if self.state in (TorrentState.DESTROYING, TorrentState.DESTROYED):
            return
        self.state = TorrentState.DESTROYING
        try:
            await self.coordinator.stop()
        finally:
            try:
                if self.swarm is not None:
                    await self.swarm.close()
            finally:
                self.state = TorrentState.DESTROYED
                self.logger.debug("Torrent %s destroyed", self.name)

    def __repr__(self) -> str:
        return f"TorrentEntry({self.content_id.hex}, state={self.state.value})"


class TorrentRegistry:
    """Insertion-ordered map from `ContentID` to `TorrentEntry`."""

    def __init__(self) -> None:
        self._entries: dict[ContentID, TorrentEntry] = {}

    def add(self, entry: TorrentEntry) -> None:
        """Register ``entry``.

        Raises:
            DuplicateTorrentError: If the content identifier is already registered

        """
        if entry.content_id in self._entries:
            msg = f"Torrent {entry.content_id.hex} already exists"
            raise DuplicateTorrentError(msg, {"info_hash": entry.content_id.hex})
        self._entries[entry.content_id] = entry

    def get(self, content_id: ContentID) -> TorrentEntry | None:
        return self._entries.get(content_id)

    def require(self, content_id: ContentID) -> TorrentEntry:
        """Return the entry for ``content_id``.

        Raises:
            NotFoundError: If no such torrent is registered

        """
        entry = self._entries.get(content_id)
        if entry is None:
            msg = f"No torrent with id {content_id.hex}"
            raise NotFoundError(msg, {"info_hash": content_id.hex})
        return entry

    def pop(self, content_id: ContentID) -> TorrentEntry:
        """Remove and return the entry for ``content_id``."""
        entry = self.require(content_id)
        del self._entries[content_id]
        return entry

    def snapshot(self) -> list[TorrentEntry]:
        """Entries in insertion order, safe to iterate while mutating."""
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __iter__(self) -> Iterator[TorrentEntry]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._entries
