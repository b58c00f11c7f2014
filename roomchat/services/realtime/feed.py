"""In-process change feed: fans committed row changes out to live subscriptions.

A subscription is scoped by table, event type and equality filters on the new
row. Each one is delivered on the event loop it was created on, so publishers
may run on any thread. Delivery order relative to the request that caused the
change is not defined.
"""

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "roomchat_pending_changes"
_CLOSED = object()


@dataclass
class Change:
    table: str
    event: str  # "INSERT" | "UPDATE"
    new: dict[str, Any] = field(default_factory=dict)


class Subscription:
    """Handle for one live channel. Consume it with a callback or with ``async for``."""

    def __init__(
        self,
        feed: "ChangeFeed",
        sub_id: int,
        table: str,
        filters: dict[str, Any],
        events: tuple[str, ...],
        callback: Callable[[Change], None] | None,
    ):
        self.id = sub_id
        self.table = table
        self.filters = filters
        self.events = events
        self._feed = feed
        self._callback = callback
        self._queue: asyncio.Queue | None = asyncio.Queue() if callback is None else None
        self._closed = False
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, change: Change) -> bool:
        if change.table != self.table or change.event not in self.events:
            return False
        return all(change.new.get(key) == value for key, value in self.filters.items())

    def close(self) -> None:
        """Release the channel. Only the first call has an effect."""
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        if self._queue is not None:
            self._enqueue(_CLOSED)
        logger.debug(f"Subscription {self.id} on {self.table} closed")

    def _deliver(self, change: Change) -> None:
        if self._closed:
            return
        if self._loop is None or self._loop.is_closed():
            self._dispatch(change)
            return
        try:
            self._loop.call_soon_threadsafe(self._dispatch, change)
        except RuntimeError:
            logger.warning(f"Subscription {self.id} lost its event loop, closing")
            self.close()

    def _dispatch(self, change: Change) -> None:
        if self._closed:
            return
        if self._callback is None:
            self._queue.put_nowait(change)  # type: ignore[union-attr]
            return
        try:
            self._callback(change)
        except Exception:
            logger.exception(f"Subscriber {self.id} failed handling {change.event} change on {change.table}")

    def _enqueue(self, item: Any) -> None:
        if self._loop is None or self._loop.is_closed():
            self._queue.put_nowait(item)  # type: ignore[union-attr]
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)  # type: ignore[union-attr]

    def __aiter__(self) -> "Subscription":
        if self._queue is None:
            raise TypeError("Callback subscriptions cannot be iterated")
        return self

    async def __anext__(self) -> Change:
        item = await self._queue.get()  # type: ignore[union-attr]
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        events: tuple[str, ...] = ("INSERT",),
        callback: Callable[[Change], None] | None = None,
    ) -> Subscription:
        with self._lock:
            sub = Subscription(self, next(self._ids), table, dict(filters or {}), events, callback)
            self._subscriptions[sub.id] = sub
        logger.debug(f"Subscription {sub.id} on {table} {sub.filters} opened")
        return sub

    def publish(self, change: Change) -> int:
        """Deliver a change to every matching subscription. Returns how many matched."""
        with self._lock:
            targets = [sub for sub in self._subscriptions.values() if sub.matches(change)]
        for sub in targets:
            sub._deliver(change)
        return len(targets)

    def publish_insert(self, session: Session, row: Any) -> None:
        """Announce ``row`` once the session's transaction commits.

        The row must already be flushed so server-generated columns are set.
        """
        change = Change(table=row.__tablename__, event="INSERT", new=row.model_dump())
        session.info.setdefault(_PENDING_KEY, []).append((self, change))

    def active_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(sub.id, None)


@event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for change_feed, change in pending:
        change_feed.publish(change)


@event.listens_for(Session, "after_soft_rollback")
def _discard_pending(session: Session, previous_transaction: Any) -> None:
    if session.info.pop(_PENDING_KEY, None):
        logger.debug("Dropped unpublished changes after rollback")


feed = ChangeFeed()
