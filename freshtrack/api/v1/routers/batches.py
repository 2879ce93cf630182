"""
API router for the batch write path.
"""
from typing import Annotated

from fastapi import APIRouter, Path, status

from freshtrack.api.dependencies import BatchServiceDep
from freshtrack.api.v1.models.responses import StatusChangeRequest
from freshtrack.domain.models import Batch, BatchCreate, ReadingsUpdate


router = APIRouter(
    prefix="/batches",
    tags=["batches"],
)

RecordId = Annotated[str, Path(description="Internal row id of the batch")]


@router.post(
    "",
    response_model=Batch,
    status_code=status.HTTP_201_CREATED,
    summary="Take in a new batch",
    description="Persist a new batch with its entry-time risk score.",
)
async def create_batch(data: BatchCreate, service: BatchServiceDep) -> Batch:
    return await service.create_batch(data)


@router.patch(
    "/{record_id}/readings",
    response_model=Batch,
    summary="Report environmental readings",
    description="Store new readings for a batch and recompute its risk score.",
)
async def update_readings(
    record_id: RecordId,
    readings: ReadingsUpdate,
    service: BatchServiceDep,
) -> Batch:
    return await service.update_readings(record_id, readings)


@router.post(
    "/{record_id}/status",
    response_model=Batch,
    summary="Change batch status",
    description="Dispatch or expire an active batch. Other transitions return 400.",
)
async def change_status(
    record_id: RecordId,
    change: StatusChangeRequest,
    service: BatchServiceDep,
) -> Batch:
    return await service.transition_status(
        record_id, change.status, destination=change.destination
    )


@router.delete(
    "/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a batch",
)
async def remove_batch(record_id: RecordId, service: BatchServiceDep) -> None:
    await service.remove_batch(record_id)
