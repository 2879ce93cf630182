"""
Application service: live, scope-filtered cache of batch records.

The cache subscribes to the change feed, is seeded by one bulk read and is
then kept in sync by applying events. At every point its contents are the
records the scope predicate selects: non-expired batches, optionally
restricted to one warehouse. Records are keyed by their internal row id and
never duplicated.

Ordering: the bulk read is newest entry first; live inserts are prepended,
updates keep their position.
"""
import logging
from enum import Enum
from typing import Callable, Optional, Protocol, Union

from freshtrack.domain.errors import BackendError, SubscriptionError
from freshtrack.domain.models import (
    Batch,
    BatchStatus,
    ChangeEvent,
    ChangeType,
    Classification,
    InventoryStats,
)
from freshtrack.infrastructure.change_feed import ChangeFeed, SubscriptionHandle
from freshtrack.services.domain.risk_model import classify

logger = logging.getLogger(__name__)


class BatchSource(Protocol):
    """Bulk read of non-expired batches, newest entry first."""

    async def fetch_active_batches(self, warehouse_id: Optional[str] = None) -> list[Batch]:
        ...


class CacheState(str, Enum):
    """Lifecycle of a cache instance."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


def matches_scope(record: Batch, warehouse_id: Optional[str]) -> bool:
    """
    Scope predicate shared by the bulk read and live events.

    Expired batches never match. Otherwise an unset scope matches every
    warehouse and a set scope matches only its own warehouse.
    """
    if record.status == BatchStatus.EXPIRED:
        return False
    if warehouse_id is None:
        return True
    return record.warehouse_id == warehouse_id


class LiveInventoryCache:
    """
    Owned, per-scope cache of batches kept in sync with a change feed.

    Mutations only happen through ``initialize`` and ``apply_event``; reads
    return copies. I/O failures are recorded on ``error``/``state`` instead
    of being raised.
    """

    def __init__(
        self,
        source: BatchSource,
        feed: ChangeFeed,
        warehouse_id: Optional[str] = None,
        classifier: Callable[[Optional[float]], Optional[Classification]] = classify,
    ):
        """
        Args:
            source: Bulk read provider (e.g. BackendClient)
            feed: Change feed to subscribe to
            warehouse_id: Scope; None means every warehouse
            classifier: Score-to-bucket mapping used for statistics
        """
        self._source = source
        self._feed = feed
        self._warehouse_id = warehouse_id
        self._classify = classifier

        self._records: list[Batch] = []
        self._subscription: Optional[SubscriptionHandle] = None
        self._generation = 0
        # Events received while the current load is in flight
        self._pending: Optional[list[ChangeEvent]] = None

        self.state = CacheState.IDLE
        self.error: Optional[Union[BackendError, SubscriptionError]] = None

    @property
    def warehouse_id(self) -> Optional[str]:
        return self._warehouse_id

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def closed(self) -> bool:
        return self.state == CacheState.CLOSED

    @property
    def records(self) -> list[Batch]:
        """Current contents, in cache order (copy)."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: str) -> bool:
        return self._position(record_id) is not None

    def matches(self, record: Batch) -> bool:
        return matches_scope(record, self._warehouse_id)

    def _position(self, record_id: str) -> Optional[int]:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        return None

    # ------------------------------------------------------------
    # Bulk load and subscription
    # ------------------------------------------------------------

    async def initialize(self) -> list[Batch]:
        """
        Replace the cache contents with a fresh bulk read.

        A result that arrives after a newer ``initialize`` started, or after
        teardown, is discarded. Events delivered while the read is in flight
        are applied as usual and replayed on top of the snapshot, so a change
        the snapshot predates is not lost.

        Returns:
            The new contents. After a failed read (see ``error``) only the
            changes received during the read remain.
        """
        if self.closed:
            return []

        self._generation += 1
        generation = self._generation
        buffered: list[ChangeEvent] = []
        self._pending = buffered
        self.state = CacheState.LOADING

        try:
            fetched = await self._source.fetch_active_batches(self._warehouse_id)
        except BackendError as e:
            if generation != self._generation or self.closed:
                logger.debug(f"Discarding failed stale load for warehouse={self._warehouse_id}")
                return self.records
            logger.error(f"Inventory load failed for warehouse={self._warehouse_id}: {e}")
            self._pending = None
            self._records = []
            self._replay(buffered)
            self.error = e
            self.state = CacheState.ERROR
            return self.records

        if generation != self._generation or self.closed:
            logger.debug(f"Discarding stale load of {len(fetched)} records for warehouse={self._warehouse_id}")
            return self.records

        records: list[Batch] = []
        seen: set[str] = set()
        for record in fetched:
            if record.id in seen or not self.matches(record):
                continue
            seen.add(record.id)
            records.append(record)

        self._pending = None
        self._records = records
        if buffered:
            logger.debug(f"Replaying {len(buffered)} events received during load")
            self._replay(buffered)
        if isinstance(self.error, BackendError):
            self.error = None
        self.state = CacheState.READY
        logger.info(f"Inventory loaded: {len(records)} batches (warehouse={self._warehouse_id})")
        return self.records

    def subscribe(self) -> bool:
        """
        Start receiving change-feed events. No-op if already subscribed.

        Returns:
            True when a subscription is active afterwards
        """
        if self.closed:
            return False
        if self._subscription is not None:
            return True
        try:
            self._subscription = self._feed.subscribe(
                on_insert=self._on_insert,
                on_update=self._on_update,
                on_delete=self._on_delete,
            )
        except SubscriptionError as e:
            logger.error(f"Change feed subscription failed for warehouse={self._warehouse_id}: {e}")
            self.error = e
            return False
        if isinstance(self.error, SubscriptionError):
            self.error = None
        logger.info(f"Subscribed to batch changes (warehouse={self._warehouse_id})")
        return True

    async def start(self) -> bool:
        """
        Subscribe, then load the initial state.

        Subscribing first means no change published during the bulk read is
        missed. The subscription stays active when the load fails, so inserts
        are captured until a retried ``initialize`` restores the baseline.

        Returns:
            True when both steps succeeded
        """
        subscribed = self.subscribe()
        await self.initialize()
        return subscribed and self.state == CacheState.READY

    def teardown(self) -> None:
        """Unsubscribe and release the contents. Safe to call repeatedly."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.cancel()
        self._generation += 1
        self._pending = None
        self._records = []
        if not self.closed:
            logger.info(f"Inventory cache closed (warehouse={self._warehouse_id})")
        self.state = CacheState.CLOSED

    # ------------------------------------------------------------
    # Live events
    # ------------------------------------------------------------

    def _on_insert(self, record: Batch) -> None:
        self.apply_event(ChangeEvent(type=ChangeType.INSERT, record=record))

    def _on_update(self, record: Batch) -> None:
        self.apply_event(ChangeEvent(type=ChangeType.UPDATE, record=record))

    def _on_delete(self, record_id: str) -> None:
        self.apply_event(ChangeEvent(type=ChangeType.DELETE, record_id=record_id))

    def apply_event(self, event: ChangeEvent) -> None:
        """Apply one change-feed notification to the cache."""
        if self.closed:
            logger.debug(f"Ignoring {event.type.value} {event.key} on closed cache")
            return

        if self._pending is not None:
            self._pending.append(event)
        self._apply(event)

    def _replay(self, events: list[ChangeEvent]) -> None:
        for event in events:
            self._apply(event)

    def _apply(self, event: ChangeEvent) -> None:
        if event.type == ChangeType.INSERT:
            self._apply_insert(event.record)
        elif event.type == ChangeType.UPDATE:
            self._apply_update(event.record)
        else:
            self._apply_delete(event.key)

    def _apply_insert(self, record: Batch) -> None:
        if not self.matches(record) or self._position(record.id) is not None:
            return
        self._records.insert(0, record)
        logger.debug(f"Inserted batch {record.batch_id} ({record.id})")

    def _apply_update(self, record: Batch) -> None:
        position = self._position(record.id)
        if not self.matches(record):
            if position is not None:
                del self._records[position]
                logger.debug(f"Batch {record.batch_id} left scope ({record.status.value})")
            return
        if position is not None:
            self._records[position] = record
        else:
            self._records.insert(0, record)
            logger.debug(f"Batch {record.batch_id} entered scope")

    def _apply_delete(self, record_id: str) -> None:
        position = self._position(record_id)
        if position is not None:
            del self._records[position]
            logger.debug(f"Deleted batch {record_id}")

    # ------------------------------------------------------------
    # Derived statistics
    # ------------------------------------------------------------

    def get_stats(self) -> InventoryStats:
        """Counts per freshness bucket, total count and total quantity."""
        stats = InventoryStats(total=len(self._records))
        for record in self._records:
            stats.total_quantity += record.quantity
            bucket = self._classify(record.risk_score)
            if bucket is None:
                stats.unscored += 1
            elif bucket == Classification.FRESH:
                stats.fresh += 1
            elif bucket == Classification.MODERATE:
                stats.moderate += 1
            else:
                stats.high += 1
        return stats
