"""
Application service: unacknowledged alert count across alert sources.

``AlertAggregator`` sums the counts of every source visible to the viewer's
role. A failing source contributes 0 and is logged; the aggregation itself
never raises. ``AlertCountMonitor`` keeps one observer's count fresh by
polling on a fixed interval and refreshing immediately on the
alert-acknowledged signal.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol

from freshtrack.config import settings
from freshtrack.domain.errors import PartialAggregationError
from freshtrack.domain.models import AlertCount, AlertScope, ViewerRole
from freshtrack.infrastructure.api_constants import AlertSourceIds
from freshtrack.infrastructure.backend_client import BackendClient
from freshtrack.infrastructure.signals import ALERT_ACKNOWLEDGED, SignalBus

logger = logging.getLogger(__name__)


class AlertSource(Protocol):
    """One independent source of unacknowledged alerts."""

    source_id: str

    def visible_to(self, role: ViewerRole) -> bool:
        ...

    async def count_unacknowledged(self, warehouse_id: str) -> int:
        ...


class BackendAlertSource:
    """Alert source backed by a backend table."""

    def __init__(
        self,
        client: BackendClient,
        source_id: str,
        roles: Optional[Iterable[ViewerRole]] = None,
    ):
        """
        Args:
            client: Backend client used for counting
            source_id: Logical source (see AlertSourceIds)
            roles: Roles allowed to see this source; None means every role
        """
        self.client = client
        self.source_id = source_id
        self.roles = frozenset(roles) if roles is not None else None

    def visible_to(self, role: ViewerRole) -> bool:
        return self.roles is None or role in self.roles

    async def count_unacknowledged(self, warehouse_id: str) -> int:
        return await self.client.count_unacknowledged(self.source_id, warehouse_id)


def default_alert_sources(client: BackendClient) -> list[BackendAlertSource]:
    """
    Sensor alerts for everyone, order alerts for warehouse staff.

    Args:
        client: Backend client shared by the sources

    Returns:
        The standard source list
    """
    return [
        BackendAlertSource(client, AlertSourceIds.SENSOR),
        BackendAlertSource(
            client,
            AlertSourceIds.ORDER,
            roles=(ViewerRole.WAREHOUSE_OWNER, ViewerRole.WAREHOUSE_MANAGER),
        ),
    ]


class AlertAggregator:
    """Sums unacknowledged alerts over independent sources."""

    def __init__(self, sources: list[AlertSource]):
        self.sources = list(sources)

    async def compute_count(self, scope: AlertScope) -> AlertCount:
        """
        Aggregate the unacknowledged count for a scope.

        Args:
            scope: Warehouse and viewer role

        Returns:
            AlertCount with the sum and the ids of sources that failed.
            An unset warehouse yields 0 without querying anything.
        """
        if not scope.warehouse_id:
            return AlertCount(count=0, warehouse_id=None)

        sources = [s for s in self.sources if s.visible_to(scope.role)]
        results = await asyncio.gather(
            *(s.count_unacknowledged(scope.warehouse_id) for s in sources),
            return_exceptions=True,
        )

        total = 0
        failed: list[str] = []
        for source, result in zip(sources, results):
            if isinstance(result, Exception):
                failure = PartialAggregationError(source.source_id, result)
                logger.warning(
                    f"{failure} (warehouse={scope.warehouse_id}); counting it as 0"
                )
                failed.append(source.source_id)
                continue
            if isinstance(result, BaseException):
                raise result
            total += int(result)

        return AlertCount(
            count=total,
            warehouse_id=scope.warehouse_id,
            queried_sources=[s.source_id for s in sources],
            failed_sources=failed,
        )


class MonitorState(str, Enum):
    """Observer state of an alert count."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


class AlertCountMonitor:
    """
    Keeps one observer's alert count current.

    Refresh triggers: start, every ``interval`` seconds, the
    alert-acknowledged signal, and scope changes. When every queried source
    fails the last known count is kept and ``stale`` is set; a partial
    failure publishes the partial sum and also sets ``stale``.
    """

    def __init__(
        self,
        aggregator: AlertAggregator,
        scope: AlertScope,
        signals: Optional[SignalBus] = None,
        interval: Optional[float] = None,
    ):
        self.aggregator = aggregator
        self.scope = scope
        self.signals = signals
        self.interval = interval if interval is not None else settings.alert_poll_interval_seconds

        self.state = MonitorState.IDLE
        self.count = 0
        self.stale = False
        self.last_result: Optional[AlertCount] = None
        self.last_refreshed_at: Optional[datetime] = None

        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> int:
        """
        Recompute the count once.

        Returns:
            The count now published by the monitor
        """
        self.state = MonitorState.LOADING
        try:
            result = await self.aggregator.compute_count(self.scope)
        finally:
            self.state = MonitorState.READY

        self.last_result = result
        self.last_refreshed_at = datetime.now(timezone.utc)
        if result.all_failed:
            self.stale = True
            logger.warning(
                f"All alert sources failed for warehouse={self.scope.warehouse_id}; "
                f"keeping last count {self.count}"
            )
        else:
            self.count = result.count
            self.stale = not result.complete
        return self.count

    def notify_acknowledged(self) -> None:
        """Request an immediate refresh."""
        self._wake.set()

    def set_scope(self, scope: AlertScope) -> None:
        """Change the observed scope; takes effect on the next refresh."""
        if scope != self.scope:
            self.scope = scope
            self.count = 0
            self.stale = False
            self.last_result = None
            self._wake.set()

    async def _run(self) -> None:
        while True:
            self._wake.clear()
            try:
                await self.refresh()
            except Exception:
                self.stale = True
                logger.exception(
                    f"Alert count refresh failed for warehouse={self.scope.warehouse_id}; "
                    f"retrying in {self.interval}s"
                )
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        """Start polling and listening for acknowledgements."""
        if self.running:
            return
        if self.signals is not None and self._unsubscribe is None:
            self._unsubscribe = self.signals.subscribe(ALERT_ACKNOWLEDGED, self.notify_acknowledged)
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Alert monitor started (warehouse={self.scope.warehouse_id}, "
            f"role={self.scope.role.value}, interval={self.interval}s)"
        )

    async def stop(self) -> None:
        """Stop polling and detach from the signal bus. Idempotent."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Alert monitor stopped (warehouse={self.scope.warehouse_id})")
