"""Client-wide readiness barrier.

Bootstrap tasks (listen-port acquisition, DHT bring-up) run concurrently.
Work submitted before they have all succeeded is queued and replayed in
submission order once they have; work submitted afterwards runs at once.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TypeVar

from btclient.utils.events import EventChannel
from btclient.utils.exceptions import BootstrapError, BTClientError
from btclient.utils.logging_config import get_logger
from btclient.utils.tasks import ParallelTasks, TaskFactory

T = TypeVar("T")


class ClientState(str, Enum):
    """Client lifecycle; transitions only move forward."""

    BOOTSTRAPPING = "bootstrapping"
    READY = "ready"
    DESTROYING = "destroying"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class BootstrapTask:
    """Named unit of asynchronous setup work."""

    name: str
    factory: TaskFactory


class ReadinessBarrier:
    """Runs bootstrap tasks and gates submitted work on their success.

    Events:
        on_ready(results: dict[str, Any])
        on_error(error: BootstrapError)
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or get_logger("readiness")
        self.tasks: list[BootstrapTask] = []
        self.results: dict[str, Any] = {}
        self.is_ready = False
        self.error: BTClientError | None = None
        self._running = False
        self._queue: deque[tuple[asyncio.Future[Any], Callable[[], Any]]] = deque()

        self.on_ready = EventChannel("ready", self.logger)
        self.on_error = EventChannel("error", self.logger)

    def add_task(self, name: str, factory: TaskFactory) -> None:
        """Register a bootstrap task; only allowed before ``run``."""
        if self._running or self.is_ready:
            msg = "Bootstrap tasks cannot be added after the barrier has started"
            raise RuntimeError(msg)
        self.tasks.append(BootstrapTask(name, factory))

    @property
    def pending(self) -> int:
        """Number of queued submissions."""
        return len(self._queue)

    async def run(self) -> dict[str, Any]:
        """Run every bootstrap task concurrently and open the barrier.

        Raises:
            BootstrapError: If any task failed; queued work fails with it too

        """
        if self._running or self.is_ready or self.error is not None:
            msg = "Readiness barrier already ran"
            raise RuntimeError(msg)
        self._running = True
        group = ParallelTasks()
        for task in self.tasks:
            group.add(task.name, task.factory)

        self.logger.debug("Running bootstrap tasks: %s", ", ".join(group.names))
        try:
            results = await group.run()
        finally:
            self._running = False

        if group.first_error is not None:
            name, exc = group.first_error
            error = BootstrapError(f"Bootstrap task '{name}' failed: {exc}", name)
            error.__cause__ = exc
            self.fail(error)
            self.on_error.emit(error)
            raise error

        self.results = results
        self.is_ready = True
        self.logger.debug("Bootstrap complete, releasing %d queued calls", self.pending)
        self.on_ready.emit(results)
        self._release()
        return results

    def _release(self) -> None:
        while self._queue:
            future, thunk = self._queue.popleft()
            if future.done():
                continue
            try:
                future.set_result(thunk())
            except Exception as e:
                future.set_exception(e)

    def fail(self, error: BTClientError) -> None:
        """Fail every queued submission and every later one with ``error``."""
        self.error = error
        while self._queue:
            future, _ = self._queue.popleft()
            if not future.done():
                future.set_exception(error)

    async def submit(self, thunk: Callable[[], T]) -> T:
        """Run ``thunk`` now if ready, otherwise once bootstrap has succeeded.

        Thunks run synchronously, in submission order.
        """
        if self.error is not None:
            raise self.error
        if self.is_ready:
            return thunk()
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue.append((future, thunk))
        return await future
