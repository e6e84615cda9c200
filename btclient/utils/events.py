"""Typed publish/subscribe channels.

Each component exposes a fixed set of ``EventChannel`` attributes
(``on_peer``, ``on_error``, ...) instead of inheriting from a shared emitter.
Handlers are plain callables invoked synchronously, in subscription order, on
the emitting task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from btclient.utils.logging_config import get_logger

Handler = Callable[..., Any]


class EventChannel:
    """A named, ordered list of handlers for one kind of event."""

    def __init__(self, name: str, logger: logging.Logger | None = None) -> None:
        """Initialize an empty channel.

        Args:
            name: Event name, used in log messages
            logger: Logger for handler failures

        """
        self.name = name
        self._handlers: list[Handler] = []
        self.logger = logger or get_logger("events")

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` and return a function that unregisters it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(handler)

        return unsubscribe

    def once(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for the next emission only."""

        def wrapper(*args: Any) -> Any:
            self.unsubscribe(wrapper)
            return handler(*args)

        return self.subscribe(wrapper)

    def unsubscribe(self, handler: Handler) -> None:
        """Remove ``handler`` if registered."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    def emit(self, *args: Any) -> int:
        """Invoke every handler with ``args``.

        A failing handler is logged and does not prevent the remaining handlers
        from running.

        Returns:
            Number of handlers invoked

        """
        handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                self.logger.exception("Handler for '%s' event failed", self.name)
        return len(handlers)

    def wait(self) -> asyncio.Future[tuple[Any, ...]]:
        """Return a future resolved with the arguments of the next emission."""
        future: asyncio.Future[tuple[Any, ...]] = (
            asyncio.get_running_loop().create_future()
        )

        def resolve(*args: Any) -> None:
            if not future.done():
                future.set_result(args)

        unsubscribe = self.once(resolve)
        future.add_done_callback(lambda _f: unsubscribe())
        return future

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"EventChannel({self.name!r}, handlers={len(self._handlers)})"
