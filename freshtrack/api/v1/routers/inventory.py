"""
API router for the live inventory view.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Query

from freshtrack.api.dependencies import AllocationRankerDep, InventoryViewDep
from freshtrack.api.v1.models.responses import AllocationResponse, InventoryResponse
from freshtrack.config import settings
from freshtrack.domain.models import AllocationRequest, InventoryStats
from freshtrack.services.application.inventory_view import InventoryView


router = APIRouter(
    prefix="/inventory",
    tags=["inventory"],
)


def _to_response(view: InventoryView) -> InventoryResponse:
    cache = view.cache
    if cache is None:
        return InventoryResponse(
            warehouse_id=None, state="idle", stats=InventoryStats(), batches=[]
        )
    return InventoryResponse(
        warehouse_id=cache.warehouse_id,
        state=cache.state.value,
        error=str(cache.error) if cache.error else None,
        stats=cache.get_stats(),
        batches=cache.records,
    )


@router.get(
    "",
    response_model=InventoryResponse,
    summary="Current live inventory",
    description="""
    Return the non-expired batches of the selected warehouse, newest first,
    with counts per freshness bucket.

    Passing a different `warehouse_id` switches the view's scope: the old
    subscription is torn down before the new warehouse is loaded.
    Without `warehouse_id` the current scope is kept.
    """,
)
async def get_inventory(
    view: InventoryViewDep,
    warehouse_id: Annotated[Optional[str], Query(description="Warehouse to scope the view to")] = None,
) -> InventoryResponse:
    """
    Get the live inventory.

    Args:
        view: Inventory view (injected)
        warehouse_id: Optional new scope

    Returns:
        InventoryResponse for the active scope
    """
    if warehouse_id is not None:
        await view.ensure_scope(warehouse_id)
    elif view.cache is None:
        await view.switch_scope(settings.default_warehouse_id)
    return _to_response(view)


@router.post(
    "/refresh",
    response_model=InventoryResponse,
    summary="Retry the inventory load",
)
async def refresh_inventory(view: InventoryViewDep) -> InventoryResponse:
    """Re-run the bulk load for the active scope."""
    if view.cache is None:
        await view.switch_scope(settings.default_warehouse_id)
    else:
        await view.retry()
    return _to_response(view)


@router.post(
    "/allocation",
    response_model=AllocationResponse,
    summary="Rank current inventory for an allocation request",
)
async def rank_for_allocation(
    request: AllocationRequest,
    view: InventoryViewDep,
    ranker: AllocationRankerDep,
) -> AllocationResponse:
    """
    Rank the batches of the active scope for a request.

    Args:
        request: Allocation request
        view: Inventory view (injected)
        ranker: Allocation ranker (injected)

    Returns:
        AllocationResponse with candidates, best first
    """
    return AllocationResponse(
        warehouse_id=view.warehouse_id,
        candidates=ranker.rank(view.records(), request),
    )
