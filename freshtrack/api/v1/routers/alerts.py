"""
API router for alert counts.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Query

from freshtrack.api.dependencies import (
    AlertAggregatorDep,
    AlertMonitorDep,
    SignalBusDep,
)
from freshtrack.api.v1.models.responses import AcknowledgedResponse, AlertCountResponse
from freshtrack.domain.models import AlertScope, ViewerRole
from freshtrack.infrastructure.signals import ALERT_ACKNOWLEDGED


router = APIRouter(
    prefix="/alerts",
    tags=["alerts"],
)


@router.get(
    "/count",
    response_model=AlertCountResponse,
    summary="Unacknowledged alert count",
    description="""
    Without `warehouse_id`, return the count maintained by the service's
    background monitor (refreshed every 30 seconds and on acknowledgement).
    With `warehouse_id`, aggregate the sources visible to `role` now.

    A failing source counts as 0 and is listed in `failed_sources`.
    """,
)
async def get_alert_count(
    aggregator: AlertAggregatorDep,
    monitor: AlertMonitorDep,
    warehouse_id: Annotated[Optional[str], Query(description="Warehouse to count for")] = None,
    role: Annotated[ViewerRole, Query(description="Viewer role")] = ViewerRole.WAREHOUSE_MANAGER,
) -> AlertCountResponse:
    """
    Get the alert count.

    Args:
        aggregator: Alert aggregator (injected)
        monitor: Background monitor (injected)
        warehouse_id: Optional explicit scope
        role: Viewer role for an explicit scope

    Returns:
        AlertCountResponse
    """
    if warehouse_id is None:
        failed = monitor.last_result.failed_sources if monitor.last_result else []
        return AlertCountResponse(
            warehouse_id=monitor.scope.warehouse_id,
            count=monitor.count,
            stale=monitor.stale,
            failed_sources=failed,
        )

    result = await aggregator.compute_count(AlertScope(warehouse_id=warehouse_id, role=role))
    return AlertCountResponse(
        warehouse_id=result.warehouse_id,
        count=result.count,
        stale=not result.complete,
        failed_sources=result.failed_sources,
    )


@router.post(
    "/acknowledged",
    response_model=AcknowledgedResponse,
    summary="Signal that an alert was acknowledged",
)
async def alert_acknowledged(signals: SignalBusDep) -> AcknowledgedResponse:
    """Broadcast the alert-acknowledged signal so counts refresh immediately."""
    return AcknowledgedResponse(listeners=signals.emit(ALERT_ACKNOWLEDGED))
