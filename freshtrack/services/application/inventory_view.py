"""
Application service: owner of the active inventory cache.

Switching the selected warehouse tears the current cache down before a new
one subscribes, so an old scope's events can never reach the new cache. The
last switch wins: a cache replaced while still loading discards its result.
"""
import logging
from typing import Optional

from freshtrack.domain.models import Batch, InventoryStats
from freshtrack.infrastructure.change_feed import ChangeFeed
from freshtrack.services.application.live_inventory_cache import (
    BatchSource,
    LiveInventoryCache,
)

logger = logging.getLogger(__name__)


class InventoryView:
    """Holds at most one LiveInventoryCache and performs scope switches."""

    def __init__(self, source: BatchSource, feed: ChangeFeed):
        self._source = source
        self._feed = feed
        self._cache: Optional[LiveInventoryCache] = None

    @property
    def cache(self) -> Optional[LiveInventoryCache]:
        return self._cache

    @property
    def warehouse_id(self) -> Optional[str]:
        return self._cache.warehouse_id if self._cache else None

    def is_scoped_to(self, warehouse_id: Optional[str]) -> bool:
        return self._cache is not None and self._cache.warehouse_id == warehouse_id

    async def switch_scope(self, warehouse_id: Optional[str]) -> LiveInventoryCache:
        """
        Replace the active cache with one scoped to ``warehouse_id``.

        Args:
            warehouse_id: New scope; None means every warehouse

        Returns:
            The new cache (check its ``state``/``error`` for load failures)
        """
        if self._cache is not None:
            self._cache.teardown()

        cache = LiveInventoryCache(self._source, self._feed, warehouse_id=warehouse_id)
        self._cache = cache
        logger.info(f"Inventory scope switched to warehouse={warehouse_id}")
        await cache.start()
        return cache

    async def ensure_scope(self, warehouse_id: Optional[str]) -> LiveInventoryCache:
        """Switch only if the active cache has a different scope."""
        if self.is_scoped_to(warehouse_id):
            return self._cache
        return await self.switch_scope(warehouse_id)

    async def retry(self) -> Optional[LiveInventoryCache]:
        """Re-establish a missing subscription, then re-run the bulk load."""
        cache = self._cache
        if cache is None:
            return None
        if not cache.subscribed:
            cache.subscribe()
        await cache.initialize()
        return cache

    def records(self) -> list[Batch]:
        return self._cache.records if self._cache else []

    def get_stats(self) -> InventoryStats:
        return self._cache.get_stats() if self._cache else InventoryStats()

    def close(self) -> None:
        """Tear down the active cache."""
        if self._cache is not None:
            self._cache.teardown()
            self._cache = None
