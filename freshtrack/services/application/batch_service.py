"""
Application service: the batch write path.

Every write computes the risk score before persisting, then publishes the
persisted record to the change feed so live caches see exactly what the
backend stored. No scoring logic here, only coordination between the risk
model, the backend and the feed.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from freshtrack.domain.errors import InvalidTransitionError
from freshtrack.domain.models import (
    Batch,
    BatchCreate,
    BatchStatus,
    ChangeEvent,
    ChangeType,
    ReadingsUpdate,
)
from freshtrack.infrastructure.backend_client import BackendClient
from freshtrack.infrastructure.change_feed import LocalChangeFeed
from freshtrack.services.domain.risk_model import score_batch

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BatchStatus.ACTIVE: {BatchStatus.DISPATCHED, BatchStatus.EXPIRED},
    BatchStatus.DISPATCHED: set(),
    BatchStatus.EXPIRED: set(),
}


class BatchService:
    """Application service for batch intake, rescoring and lifecycle changes."""

    def __init__(
        self,
        client: BackendClient,
        feed: Optional[LocalChangeFeed] = None,
    ):
        """
        Args:
            client: Backend client used for persistence
            feed: Local change feed to publish persisted changes to
        """
        self.client = client
        self.feed = feed

    def _publish(self, event: ChangeEvent) -> None:
        if self.feed is not None:
            self.feed.publish(event)

    async def create_batch(
        self,
        data: BatchCreate,
        now: Optional[datetime] = None,
    ) -> Batch:
        """
        Take in a new batch with its entry-time risk score.

        Args:
            data: Intake payload
            now: Evaluation time (defaults to the entry date or current time)

        Returns:
            The persisted batch
        """
        now = now or datetime.now(timezone.utc)
        entry_date = data.entry_date or now

        # Score a provisional record so intake and rescoring share one path
        provisional = Batch(
            id="pending",
            entry_date=entry_date,
            status=BatchStatus.ACTIVE,
            **data.model_dump(exclude={"entry_date"}),
        )
        values = provisional.model_dump(mode="json", exclude={"id"}, exclude_none=True)
        values["risk_score"] = score_batch(provisional, now=now)

        batch = await self.client.insert_batch(values)
        logger.info(
            f"Batch {batch.batch_id} created in {batch.warehouse_id}/{batch.zone} "
            f"with risk score {batch.risk_score}"
        )
        self._publish(ChangeEvent(type=ChangeType.INSERT, record=batch))
        return batch

    async def _persist_update(self, record_id: str, changes: dict[str, Any]) -> Batch:
        batch = await self.client.update_batch(record_id, changes)
        self._publish(ChangeEvent(type=ChangeType.UPDATE, record=batch))
        return batch

    async def update_readings(
        self,
        record_id: str,
        readings: ReadingsUpdate,
        now: Optional[datetime] = None,
    ) -> Batch:
        """
        Store new environmental readings and recompute the risk score.

        Args:
            record_id: Internal row id
            readings: Readings to merge into the stored batch
            now: Evaluation time

        Returns:
            The persisted batch
        """
        current = await self.client.get_batch(record_id)
        reported = readings.model_dump(exclude_none=True)
        updated = current.model_copy(update=reported)

        changes: dict[str, Any] = readings.model_dump(mode="json", exclude_none=True)
        changes["risk_score"] = score_batch(updated, now=now)
        logger.info(
            f"Rescored batch {current.batch_id}: {current.risk_score} -> {changes['risk_score']}"
        )
        return await self._persist_update(record_id, changes)

    async def rescore(self, record_id: str, now: Optional[datetime] = None) -> Batch:
        """Recompute the risk score from stored readings and elapsed time."""
        current = await self.client.get_batch(record_id)
        return await self._persist_update(
            record_id, {"risk_score": score_batch(current, now=now)}
        )

    async def transition_status(
        self,
        record_id: str,
        status: BatchStatus,
        destination: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Batch:
        """
        Move a batch along its lifecycle.

        Args:
            record_id: Internal row id
            status: Target status (dispatched or expired)
            destination: Dispatch destination, for dispatches
            now: Dispatch timestamp

        Raises:
            InvalidTransitionError: If the lifecycle does not allow the change
        """
        current = await self.client.get_batch(record_id)
        if status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"Batch {current.batch_id} cannot go from {current.status.value} to {status.value}"
            )

        changes: dict[str, Any] = {"status": status.value}
        if status == BatchStatus.DISPATCHED:
            changes["dispatch_date"] = (now or datetime.now(timezone.utc)).isoformat()
            if destination:
                changes["destination"] = destination
        logger.info(f"Batch {current.batch_id}: {current.status.value} -> {status.value}")
        return await self._persist_update(record_id, changes)

    async def remove_batch(self, record_id: str) -> None:
        """Hard-delete a batch and reflect the removal in live caches."""
        await self.client.delete_batch(record_id)
        logger.info(f"Batch row {record_id} removed")
        self._publish(ChangeEvent(type=ChangeType.DELETE, record_id=record_id))
