"""Simple dependency injection container and factories for btclient.

The DI container is optional and non-invasive. When not provided, the client
falls back to `default_container` (HTTP tracker engine, no DHT engine, no
swarm).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from btclient.utils.logging_config import get_logger

if TYPE_CHECKING:  # pragma: no cover
    import logging

    from btclient.discovery.types import DHTFactory, SwarmFactory, TrackerFactory
    from btclient.models import ClientConfig


PortAllocator = Callable[[str], Awaitable[int]]


@dataclass
class DIContainer:
    """Holds factories/providers for constructing services.

    ``dht_factory`` and ``swarm_factory`` may be None: the client then runs
    without an owned DHT and without a wire-protocol engine.
    """

    # Discovery
    dht_factory: DHTFactory | None = None
    tracker_factory: TrackerFactory | None = None

    # Per-torrent engines
    swarm_factory: SwarmFactory | None = None

    # Infra
    port_allocator: PortAllocator | None = None
    clock: Callable[[], float] = time.monotonic
    logger_factory: Callable[[str], logging.Logger] = get_logger

    def with_overrides(self, **changes: Any) -> DIContainer:
        """Return a copy with some providers replaced."""
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        values.update(changes)
        return DIContainer(**values)


def default_container(config: ClientConfig | None = None) -> DIContainer:
    """Build a container with the bundled defaults."""
    from btclient.discovery.tracker import make_tracker_factory
    from btclient.session.bootstrap import acquire_listen_port

    return DIContainer(
        tracker_factory=make_tracker_factory(config),
        port_allocator=acquire_listen_port,
    )
