"""
Per-connection notification subscriber.

Each connected client session gets its own ``NotificationSubscriber``: it
subscribes to the change feed for one recipient, loads the authoritative
unread count, then layers live deltas on top. The feed only invalidates the
cached counter; on idle timeout or queue overflow the count is reloaded from
the database.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from pydantic.alias_generators import to_camel

from townsquare.modules.notifications.models.notification import Notification
from townsquare.modules.notifications.realtime.change_feed import ChangeEvent, ChangeFeed, Subscription, INSERT, UPDATE

logger = logging.getLogger(__name__)

SNAPSHOT = "snapshot"
NOTIFICATION = "notification"
UNREAD_COUNT = "unread-count"
KEEPALIVE = "keepalive"

@dataclass
class SubscriberMessage:
    event: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        if self.event == KEEPALIVE:
            return ": keepalive\n\n"
        return f"event: {self.event}\ndata: {json.dumps(self.data)}\n\n"


class NotificationSubscriber:
    def __init__(
        self,
        recipient_id: str,
        feed: ChangeFeed,
        load_unread_count: Callable[[str], Awaitable[int]],
        resync_interval: float = 25.0,
        queue_size: int = 256,
    ):
        self.recipient_id = recipient_id
        self.feed = feed
        self.load_unread_count = load_unread_count
        self.resync_interval = resync_interval
        self.queue_size = queue_size
        self.unread_count = 0
        self.subscription: Optional[Subscription] = None

    async def __aenter__(self) -> "NotificationSubscriber":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def connect(self) -> SubscriberMessage:
        # Subscribe before loading the count so nothing committed in between is missed
        self.subscription = self.feed.subscribe(
            Notification.__tablename__,
            {"recipient_id": self.recipient_id},
            maxsize=self.queue_size,
        )
        logger.info(f"Notification subscriber connected for user {self.recipient_id}")
        return await self.resync()

    async def resync(self) -> SubscriberMessage:
        self.unread_count = await self.load_unread_count(self.recipient_id)
        return SubscriberMessage(SNAPSHOT, {"unreadCount": self.unread_count})

    def apply(self, change: ChangeEvent) -> Optional[SubscriberMessage]:
        """Update the live counter from one change, return the message to push"""
        if change.new.get("recipient_id") != self.recipient_id:
            return None

        if change.op == INSERT:
            if change.new.get("is_read"):
                return None
            self.unread_count += 1
            notification = {to_camel(k): v for k, v in change.new.items()}
            return SubscriberMessage(NOTIFICATION, {"notification": notification, "unreadCount": self.unread_count})

        if change.op == UPDATE:
            was_read = (change.old or {}).get("is_read")
            if change.new.get("is_read") and was_read is False:
                self.unread_count = max(0, self.unread_count - 1)
                return SubscriberMessage(UNREAD_COUNT, {"unreadCount": self.unread_count})

        return None

    async def stream(self) -> AsyncIterator[SubscriberMessage]:
        """Snapshot first, then live messages until the consumer stops iterating"""
        try:
            yield await self.connect()
            while True:
                if self.subscription.overflowed:
                    self.subscription.reset()
                    yield await self.resync()
                    continue

                change = await self.subscription.get(timeout=self.resync_interval)
                if change is None:
                    previous = self.unread_count
                    snapshot = await self.resync()
                    yield snapshot if snapshot.data["unreadCount"] != previous else SubscriberMessage(KEEPALIVE)
                    continue

                message = self.apply(change)
                if message is not None:
                    yield message
        finally:
            self.close()

    def close(self) -> None:
        if self.subscription is not None and not self.subscription.closed:
            self.subscription.close()
            logger.info(f"Notification subscriber closed for user {self.recipient_id}")
