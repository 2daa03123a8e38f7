"""
Row-change feed.

A ``ChangeFeed`` fans row-level INSERT/UPDATE events out to subscriptions
filtered by table and by equality on columns of the new row. Events are
published from request worker threads (or the Postgres listener thread) and
handed to each subscription's event loop with ``call_soon_threadsafe``, so a
subscription must be created from inside a running loop.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"

@dataclass
class ChangeEvent:
    op: str
    table: str
    new: Dict[str, Any]
    old: Optional[Dict[str, Any]] = None

    def matches(self, table: str, filters: Dict[str, Any]) -> bool:
        if self.table != table:
            return False
        return all(self.new.get(column) == value for column, value in filters.items())


class Subscription:
    """One consumer's bounded view of the feed."""

    def __init__(self, feed: "ChangeFeed", table: str, filters: Dict[str, Any], maxsize: int):
        self.feed = feed
        self.table = table
        self.filters = dict(filters)
        self.loop = asyncio.get_running_loop()
        self.queue: "asyncio.Queue[ChangeEvent]" = asyncio.Queue(maxsize=maxsize)
        self.overflowed = False
        self.closed = False

    def deliver(self, event: ChangeEvent) -> None:
        """Thread-safe hand-off to the subscription's loop"""
        if self.closed:
            return
        try:
            self.loop.call_soon_threadsafe(self._offer, event)
        except RuntimeError:
            # Loop already shut down; the consumer is gone
            logger.debug(f"Dropping subscription on closed loop for {self.filters}")
            self.close()

    def _offer(self, event: ChangeEvent) -> None:
        if self.closed or self.overflowed:
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.overflowed = True
            logger.warning(f"Subscription queue full for {self.table} {self.filters}, dropping events until resync")

    async def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None when nothing arrived within ``timeout`` seconds"""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def reset(self) -> None:
        """Discard buffered events and accept new ones again"""
        while not self.queue.empty():
            self.queue.get_nowait()
        self.overflowed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed.unsubscribe(self)


class ChangeFeed:
    """Port: subscribe-by-filter and publish row changes"""

    def subscribe(self, table: str, filters: Dict[str, Any], maxsize: int = 256) -> Subscription:
        raise NotImplementedError

    def unsubscribe(self, subscription: Subscription) -> None:
        raise NotImplementedError

    def publish(self, event: ChangeEvent) -> int:
        raise NotImplementedError


class InMemoryChangeFeed(ChangeFeed):
    """Process-local fan-out hub shared by every publisher backend"""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, table: str, filters: Dict[str, Any], maxsize: int = 256) -> Subscription:
        subscription = Subscription(self, table, filters, maxsize)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug(f"Subscribed to {table} with {filters}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        logger.debug(f"Unsubscribed from {subscription.table} with {subscription.filters}")

    def publish(self, event: ChangeEvent) -> int:
        """Deliver to every matching subscription, return how many matched"""
        with self._lock:
            targets = [s for s in self._subscriptions if event.matches(s.table, s.filters)]
        for subscription in targets:
            subscription.deliver(event)
        return len(targets)


# Shared by the publishers and the SSE endpoint
change_feed = InMemoryChangeFeed()
