"""Task helpers for concurrent fan-out/fan-in and background task tracking."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Coroutine

TaskFactory = Callable[[], Awaitable[Any]]


class ParallelTasks:
    """Run a fixed set of tasks concurrently and join on all of them.

    Unlike ``asyncio.TaskGroup`` a failure does not cancel the siblings: every
    task runs to completion, and the first failure (in completion order) is
    reported only once the whole group has finished.
    """

    def __init__(self) -> None:
        """Initialize an empty group."""
        self._factories: list[tuple[str, TaskFactory]] = []
        self.errors: list[tuple[str, BaseException]] = []
        self.results: dict[str, Any] = {}

    def add(self, name: str, factory: TaskFactory) -> None:
        """Register a task to be started by ``run``."""
        if any(existing == name for existing, _ in self._factories):
            msg = f"Duplicate task name: {name}"
            raise ValueError(msg)
        self._factories.append((name, factory))

    def __len__(self) -> int:
        return len(self._factories)

    @property
    def names(self) -> list[str]:
        """Registered task names, in registration order."""
        return [name for name, _ in self._factories]

    @property
    def first_error(self) -> tuple[str, BaseException] | None:
        """Name and exception of the first task that failed, if any."""
        return self.errors[0] if self.errors else None

    async def run(self) -> dict[str, Any]:
        """Start every task, wait for all of them, and return their results.

        Results are keyed by task name. Failed tasks are recorded in
        ``errors`` in the order they finished; nothing is raised here so the
        caller decides how to surface them.
        """
        if not self._factories:
            return {}

        async def _run_one(name: str, factory: TaskFactory) -> None:
            try:
                self.results[name] = await factory()
            except Exception as e:
                self.errors.append((name, e))

        await asyncio.gather(
            *(_run_one(name, factory) for name, factory in self._factories)
        )
        return dict(self.results)


class BackgroundTaskGroup:
    """Tracks background tasks for easier cancellation and cleanup."""

    def __init__(self) -> None:
        """Initialize empty task group."""
        self._tasks: set[asyncio.Task[Any]] = set()

    def create(
        self, coro: Coroutine[Any, Any, Any], *, name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track an asyncio task from a coroutine."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def wait(self, timeout: float | None = None) -> None:
        """Wait for all tracked tasks to finish without cancelling them."""
        if not self._tasks:
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(
                asyncio.gather(*self._tasks, return_exceptions=True),
                timeout=timeout,
            )

    async def cancel_and_wait(self, timeout: float | None = None) -> None:
        """Cancel all tracked tasks and wait for completion (with optional timeout)."""
        if not self._tasks:
            return
        for t in list(self._tasks):
            if not t.done():
                t.cancel()
        await self.wait(timeout)
        self._tasks.clear()
