"""
Change feed - live subscriptions over stored collections.

Every committed write to `users`, `donations` or `notifications` is
published here. A subscriber registers a handler for one collection,
optionally with a predicate over the event, and receives every matching
event in publish order until it unsubscribes.

Delivery is synchronous on the publishing thread. A handler that raises is
logged and skipped; it never fails the write that produced the event.
"""

import asyncio
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    """Collections that publish change events."""
    USERS = "users"
    DONATIONS = "donations"
    NOTIFICATIONS = "notifications"


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


@dataclass
class ChangeEvent:
    """A single committed change to one record."""
    collection: Collection
    change: ChangeType
    record_id: str
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection.value,
            "change": self.change.value,
            "record_id": self.record_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=_json_default)

    def to_sse(self) -> str:
        """Format for Server-Sent Events"""
        return f"data: {self.to_json()}\n\n"


ChangeHandler = Callable[[ChangeEvent], None]
ChangePredicate = Callable[[ChangeEvent], bool]


@dataclass
class Subscription:
    """Handle returned by `ChangeFeed.subscribe`."""
    id: str
    collection: Collection
    handler: ChangeHandler
    predicate: Optional[ChangePredicate]
    feed: "ChangeFeed"
    active: bool = True

    def matches(self, event: ChangeEvent) -> bool:
        if event.collection != self.collection:
            return False
        if self.predicate is None:
            return True
        return bool(self.predicate(event))

    def unsubscribe(self) -> None:
        self.feed.unsubscribe(self)


class ChangeFeed:
    """Thread-safe publish/subscribe hub for record changes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, Subscription] = {}
        self._published = 0

    def subscribe(
        self,
        collection: Collection,
        handler: ChangeHandler,
        predicate: Optional[ChangePredicate] = None,
    ) -> Subscription:
        """Register `handler` for changes to `collection` that satisfy `predicate`."""
        subscription = Subscription(
            id=str(uuid.uuid4()),
            collection=Collection(collection),
            handler=handler,
            predicate=predicate,
            feed=self,
        )
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        logger.debug(f"Subscribed {subscription.id} to {subscription.collection.value}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Stop delivery to `subscription`. Idempotent."""
        with self._lock:
            self._subscriptions.pop(subscription.id, None)
            subscription.active = False
        logger.debug(f"Unsubscribed {subscription.id}")

    def publish(self, event: ChangeEvent) -> int:
        """Deliver `event` to every matching subscription.

        Returns:
            Number of handlers that received the event without raising
        """
        with self._lock:
            self._published += 1
            targets = list(self._subscriptions.values())

        delivered = 0
        for subscription in targets:
            try:
                if not subscription.matches(event):
                    continue
                subscription.handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Change handler {subscription.id} failed for "
                    f"{event.collection.value}/{event.record_id}: {type(e).__name__}: {str(e)}"
                )
        return delivered

    def emit(
        self,
        collection: Collection,
        change: ChangeType,
        record_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Convenience wrapper building and publishing a `ChangeEvent`."""
        return self.publish(ChangeEvent(collection=collection, change=change, record_id=record_id, data=data))

    def subscriber_count(self, collection: Optional[Collection] = None) -> int:
        with self._lock:
            if collection is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions.values() if s.collection == collection)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "published": self._published,
                "subscriptions": len(self._subscriptions),
            }

    async def sse_stream(
        self,
        collection: Collection,
        predicate: Optional[ChangePredicate] = None,
        max_queue: int = 100,
    ) -> AsyncIterator[str]:
        """Async generator of SSE frames for one live subscription.

        Use with FastAPI StreamingResponse. The subscription is removed when
        the consumer stops iterating (client disconnect cancels the generator).
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)

        def _enqueue(event: ChangeEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"SSE queue full for {collection.value}; dropping {event.record_id}")

        subscription = self.subscribe(
            collection,
            lambda event: loop.call_soon_threadsafe(_enqueue, event),
            predicate,
        )
        try:
            while True:
                event = await queue.get()
                yield event.to_sse()
        finally:
            subscription.unsubscribe()


# Process-wide feed; repositories publish into it after each commit.
change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    """FastAPI dependency returning the process-wide change feed."""
    return change_feed
