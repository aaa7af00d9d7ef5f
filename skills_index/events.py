"""
Typed publish/subscribe channels.

One :class:`EventChannel` exists per event type (watcher "did change",
"install detected", "operation completed", ...). Subscribing returns a
:class:`Subscription` whose ``dispose()`` removes exactly that handler.

Example:
    changed: EventChannel[None] = EventChannel("watcher.changed")

    sub = changed.subscribe(lambda _: print("changed"))
    changed.publish(None)
    sub.dispose()

Handlers may be plain callables or coroutine functions. Coroutines are
scheduled on the running loop; the channel keeps a reference until they
finish. A handler that raises is logged and does not stop delivery to the
remaining handlers.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Generic, List, Optional, Set, TypeVar

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Any]


class Subscription:
    """Handle returned by :meth:`EventChannel.subscribe`."""

    def __init__(self, dispose: Callable[[], None]):
        self._dispose = dispose
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self._dispose()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.dispose()


class EventChannel(Generic[T]):
    """A single event type with an ordered list of handlers."""

    def __init__(self, name: str = ""):
        self.name = name
        self._handlers: List[Handler] = []
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def subscribe(self, handler: Handler) -> Subscription:
        if self._closed:
            raise RuntimeError(f"Event channel {self.name!r} is disposed")
        self._handlers.append(handler)

        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

        return Subscription(remove)

    def publish(self, value: T) -> None:
        # Copy so handlers may dispose their own subscription while running.
        for handler in list(self._handlers):
            try:
                result = handler(value)
            except Exception as e:
                logger.warning("Event handler error (event=%s): %s", self.name, e)
                continue
            if asyncio.iscoroutine(result):
                self._schedule(result)

    def _schedule(self, coro: Any) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning(
                "Async handler skipped outside an event loop (event=%s)", self.name
            )
            return
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Async event handler error (event=%s): %s", self.name, exc)

    async def wait_idle(self) -> None:
        """Wait for every scheduled async handler to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def dispose(self) -> None:
        """Drop all handlers and cancel pending async handlers."""
        self._closed = True
        self._handlers.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


async def next_event(
    channel: EventChannel[T],
    predicate: Optional[Callable[[T], bool]] = None,
) -> T:
    """Wait for the next published value that satisfies ``predicate``."""
    future: asyncio.Future = asyncio.get_running_loop().create_future()

    def handler(value: T) -> None:
        if future.done():
            return
        if predicate is None or predicate(value):
            future.set_result(value)

    with channel.subscribe(handler):
        return await future
