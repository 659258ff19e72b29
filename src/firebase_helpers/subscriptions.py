"""Live-update channel for a collection snapshot listener.

Firestore delivers snapshot callbacks on its own background thread. Each
:class:`Subscription` decodes the full snapshot there and hands the result to
the event loop it was created on, where consumers read it with ``async for``::

    subscription = service.subscribe(Workout)
    async for workouts in subscription:
        render(workouts)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

from firebase_helpers.exceptions import DecodingError, DocumentNotFoundError, QueryError
from firebase_helpers.mapping import decode
from firebase_helpers.models import FirestoreModel

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=FirestoreModel)

# Queued after the last snapshot to end iteration.
_CLOSED: Any = object()


class Subscription(Generic[M]):
    """Handle and async-iterable channel for one snapshot listener.

    Every notification yields the complete, ordered list of decodable objects
    currently in the collection. Documents that fail to decode are left out;
    notifications that cannot be read at all are dropped. Both are reported
    to ``on_error`` (on the event loop) when one was given, so callers decide
    whether to ignore them.
    """

    def __init__(
        self,
        model: type[M],
        loop: asyncio.AbstractEventLoop,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.model = model
        self._loop = loop
        self._on_error = on_error
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._watch: Any = None
        self._closed = False
        self._ended = False

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, watch: Any) -> None:
        """Bind the store-side listener registration so :meth:`close` can cancel it."""
        self._watch = watch

    def handle_snapshot(self, documents: Iterable[Any], changes: Any = None, read_time: Any = None) -> None:
        """Snapshot callback registered with ``on_snapshot``."""
        if self._closed:
            return
        try:
            snapshots = list(documents)
        except Exception as exc:
            logger.warning(
                "Dropping %s snapshot notification: %s", self.model.__name__, type(exc).__name__, exc_info=True
            )
            self._report(
                QueryError(
                    entity_name=self.model.__name__,
                    operation="subscribe",
                    detail="Snapshot notification could not be read.",
                    cause=exc,
                )
            )
            return

        objects: list[M] = []
        for snapshot in snapshots:
            try:
                objects.append(decode(self.model, snapshot))
            except (DecodingError, DocumentNotFoundError) as exc:
                logger.warning("Skipping undecodable %s document %s", self.model.__name__, snapshot.id)
                self._report(exc)
        self._put(objects)

    def close(self) -> None:
        """Cancel the store listener and end iteration. Safe to call twice.

        ``Watch.unsubscribe`` joins the listener thread; from a coroutine use
        :meth:`aclose` so the event loop is not blocked.
        """
        if self._closed:
            return
        watch = self._mark_closed()
        if watch is not None:
            watch.unsubscribe()
        self._put(_CLOSED)

    async def aclose(self) -> None:
        """Like :meth:`close`, but stops the listener on a worker thread."""
        if self._closed:
            return
        watch = self._mark_closed()
        if watch is not None:
            await asyncio.to_thread(watch.unsubscribe)
        self._put(_CLOSED)

    def __aiter__(self) -> Subscription[M]:
        return self

    async def __anext__(self) -> list[M]:
        if self._ended:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            # A snapshot already in flight during close() can land behind the
            # marker; it is never delivered.
            self._ended = True
            raise StopAsyncIteration
        return item

    def _mark_closed(self) -> Any:
        self._closed = True
        watch, self._watch = self._watch, None
        return watch

    def _put(self, item: Any) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def _report(self, exc: Exception) -> None:
        if self._on_error is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._on_error, exc)
