"""Concurrent teardown of torrents and shared resources."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from btclient.utils.events import EventChannel
from btclient.utils.exceptions import TeardownError
from btclient.utils.logging_config import get_logger
from btclient.utils.tasks import ParallelTasks

if TYPE_CHECKING:  # pragma: no cover
    from btclient.discovery.types import DHTEngine
    from btclient.session.registry import TorrentEntry, TorrentRegistry


class LifecycleOrchestrator:
    """Fans out teardown tasks and joins on all of them.

    Events:
        on_teardown(names: list[str])   before the tasks start
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or get_logger("lifecycle")
        self.on_teardown = EventChannel("teardown", self.logger)

    async def teardown_entry(self, entry: TorrentEntry) -> None:
        """Tear down a single torrent; failures propagate to the caller."""
        await entry.destroy()

    async def destroy_all(
        self, registry: TorrentRegistry, dht: DHTEngine | None = None
    ) -> int:
        """Tear down every registered torrent plus ``dht`` concurrently.

        The registry is emptied before any task starts. Every task runs to
        completion; failures are reported together afterwards.

        Args:
            registry: Registry whose entries are torn down
            dht: Owned DHT to destroy, or None

        Returns:
            Number of teardown tasks that ran

        Raises:
            TeardownError: If any task failed (``first`` is the earliest failure)

        """
        entries = registry.snapshot()
        registry.clear()

        group = ParallelTasks()
        for entry in entries:
            group.add(f"torrent:{entry.content_id.hex}", entry.destroy)
        if dht is not None:
            group.add("dht", dht.destroy)

        self.on_teardown.emit(group.names)
        self.logger.debug("Tearing down %d resources", len(group))
        await group.run()

        if group.errors:
            for name, exc in group.errors:
                self.logger.error("Teardown of %s failed: %s", name, exc)
            name, first = group.errors[0]
            msg = f"{len(group.errors)} of {len(group)} teardown tasks failed; first: {name}: {first}"
            raise TeardownError(msg, [exc for _, exc in group.errors]) from first
        return len(group)
