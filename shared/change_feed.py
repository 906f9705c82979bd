"""
In-memory change feed for the orders table.

Stands in for the data store's realtime subscription channel: the store
publishes a ChangeEvent for every insert/update/delete and every subscriber
is told about it. Subscribers treat any event as "invalidate and recompute",
so the feed does not need to preserve payload ordering guarantees.

Design decisions:
- Synchronous delivery, in subscription order
- A handler that raises is logged and does not stop other handlers
- The transport can be dropped (``drop``), which closes every subscription
  and reports a SubscriptionError to each subscriber's error callback
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional
from uuid import uuid4

from shared.errors import SubscriptionError
from shared.models import ChangeEvent

logger = logging.getLogger("change_feed")


# Type aliases for subscriber callbacks
ChangeHandler = Callable[[ChangeEvent], None]
ErrorHandler = Callable[[SubscriptionError], None]


@dataclass(eq=False)
class Subscription:
    """
    A live registration on the change feed.

    ``close`` is idempotent: closing twice, or closing a subscription the
    feed already dropped, is a no-op.
    """
    feed: "ChangeFeed"
    on_event: ChangeHandler
    on_error: Optional[ErrorHandler] = None
    table: str = "orders"
    subscription_id: str = field(default_factory=lambda: str(uuid4()))
    closed: bool = False

    def close(self) -> None:
        """Release the subscription."""
        if self.closed:
            return
        self.closed = True
        self.feed._remove(self)

    def __str__(self) -> str:
        return f"Subscription({self.table}, id={self.subscription_id[:8]})"


class ChangeFeed:
    """
    Simple pub/sub channel for order change events.

    Example usage:
        feed = ChangeFeed()
        sub = feed.subscribe(lambda event: print(event))
        feed.publish(ChangeEvent(event_type="update", record={"id": "o-1"}))
        sub.close()
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._connected = True
        self._published = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def published_count(self) -> int:
        """Number of events published since creation."""
        return self._published

    def subscribe(
        self,
        on_event: ChangeHandler,
        on_error: Optional[ErrorHandler] = None,
        table: str = "orders",
    ) -> Subscription:
        """
        Subscribe to change events on ``table``.

        Raises:
            SubscriptionError: If the transport is currently down
        """
        if not self._connected:
            raise SubscriptionError("Change feed is disconnected")

        subscription = Subscription(feed=self, on_event=on_event, on_error=on_error, table=table)
        self._subscriptions.append(subscription)
        logger.debug(f"Opened {subscription}")
        return subscription

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every subscriber of its table.

        Returns:
            Number of handlers that received the event
        """
        self._published += 1
        if not self._connected:
            logger.debug(f"Feed disconnected, dropping {event}")
            return 0

        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.closed or subscription.table != event.table:
                continue
            delivered += 1
            try:
                subscription.on_event(event)
            except Exception as e:
                logger.error(f"Change handler raised for {event}: {e}")

        logger.debug(f"Published {event} to {delivered} subscriber(s)")
        return delivered

    def drop(self, reason: str = "connection lost") -> None:
        """
        Simulate the transport going away.

        Every open subscription is closed and its error callback receives a
        SubscriptionError. The feed stays disconnected until ``reconnect``.
        """
        self._connected = False
        dropped = list(self._subscriptions)
        self._subscriptions.clear()
        logger.warning(f"Change feed dropped ({reason}), closing {len(dropped)} subscription(s)")

        for subscription in dropped:
            subscription.closed = True
            if subscription.on_error is None:
                continue
            try:
                subscription.on_error(SubscriptionError(reason))
            except Exception as e:
                logger.error(f"Subscription error handler raised: {e}")

    def reconnect(self) -> None:
        """Bring the transport back; new subscriptions are accepted again."""
        self._connected = True
        logger.info("Change feed reconnected")

    def get_subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
            logger.debug(f"Closed {subscription}")
        except ValueError:
            pass
