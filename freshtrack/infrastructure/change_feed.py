"""
Change feed contract for the batch collection, plus an in-process feed.

A feed delivers one callback per insert/update/delete on the batch
collection. ``LocalChangeFeed`` broadcasts to subscribers synchronously in
publish order; the write path publishes every persisted mutation to it.
"""
import itertools
import logging
from typing import Callable, Protocol

from freshtrack.domain.errors import SubscriptionError
from freshtrack.domain.models import Batch, ChangeEvent, ChangeType

logger = logging.getLogger(__name__)

RecordCallback = Callable[[Batch], None]
DeleteCallback = Callable[[str], None]


class SubscriptionHandle(Protocol):
    """Handle returned by a subscription; ``cancel`` must be idempotent."""

    def cancel(self) -> None:
        ...


class ChangeFeed(Protocol):
    """Push source of batch change notifications."""

    def subscribe(
        self,
        on_insert: RecordCallback,
        on_update: RecordCallback,
        on_delete: DeleteCallback,
    ) -> SubscriptionHandle:
        ...


class _Subscriber:
    def __init__(
        self,
        on_insert: RecordCallback,
        on_update: RecordCallback,
        on_delete: DeleteCallback,
    ):
        self.on_insert = on_insert
        self.on_update = on_update
        self.on_delete = on_delete


class LocalSubscription:
    """Subscription on a LocalChangeFeed."""

    def __init__(self, feed: "LocalChangeFeed", subscriber_id: int):
        self._feed = feed
        self._subscriber_id = subscriber_id
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._feed._remove(self._subscriber_id)


class LocalChangeFeed:
    """
    In-process change feed.

    Callbacks run synchronously inside ``publish``. A subscriber that raises
    is logged and does not stop delivery to the others.
    """

    def __init__(self):
        self._subscribers: dict[int, _Subscriber] = {}
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        on_insert: RecordCallback,
        on_update: RecordCallback,
        on_delete: DeleteCallback,
    ) -> LocalSubscription:
        """
        Register callbacks for every subsequent change.

        Raises:
            SubscriptionError: If the feed has been closed
        """
        if self._closed:
            raise SubscriptionError("Change feed is closed")
        subscriber_id = next(self._ids)
        self._subscribers[subscriber_id] = _Subscriber(on_insert, on_update, on_delete)
        logger.debug(f"Subscriber {subscriber_id} registered ({self.subscriber_count} active)")
        return LocalSubscription(self, subscriber_id)

    def _remove(self, subscriber_id: int) -> None:
        self._subscribers.pop(subscriber_id, None)
        logger.debug(f"Subscriber {subscriber_id} removed ({self.subscriber_count} active)")

    def publish(self, event: ChangeEvent) -> None:
        """Deliver one change to every current subscriber."""
        # Snapshot: a callback may cancel its own subscription
        for subscriber_id, subscriber in list(self._subscribers.items()):
            try:
                if event.type == ChangeType.INSERT:
                    subscriber.on_insert(event.record)
                elif event.type == ChangeType.UPDATE:
                    subscriber.on_update(event.record)
                else:
                    subscriber.on_delete(event.key)
            except Exception:
                logger.exception(
                    f"Subscriber {subscriber_id} failed handling {event.type.value} {event.key}"
                )

    def close(self) -> None:
        """Drop every subscriber and refuse new subscriptions."""
        self._closed = True
        self._subscribers.clear()
