"""
API request and response models using Pydantic.
"""
from typing import List, Optional
from pydantic import BaseModel, Field

from freshtrack.domain.models import (
    Batch,
    BatchStatus,
    Classification,
    InventoryStats,
    RankedBatch,
)


class RiskScoreResponse(BaseModel):
    """Risk score computed for a set of factors."""
    score: int = Field(
        description="Spoilage risk score, 0 (fresh) to 100",
        examples=[41]
    )
    classification: Classification = Field(
        description="Freshness bucket of the score"
    )
    recommendation: str = Field(
        description="Routing advice for the bucket"
    )
    requires_early_intervention: bool

    class Config:
        json_schema_extra = {
            "example": {
                "score": 41,
                "classification": "moderate",
                "recommendation": "Monitor closely. Prioritize for hotels, restaurants, or processing units.",
                "requires_early_intervention": False,
            }
        }


class InventoryResponse(BaseModel):
    """Current live inventory for a warehouse scope."""
    warehouse_id: Optional[str] = Field(
        description="Scope of the view; null means every warehouse"
    )
    state: str = Field(
        description="Cache state: loading, ready, error"
    )
    error: Optional[str] = Field(
        default=None,
        description="Why the last load or subscription failed, if it did"
    )
    stats: InventoryStats
    batches: List[Batch]


class AlertCountResponse(BaseModel):
    """Unacknowledged alert count for a scope."""
    warehouse_id: Optional[str] = None
    count: int = Field(
        description="Unacknowledged alerts across visible sources"
    )
    stale: bool = Field(
        default=False,
        description="True when at least one source could not be queried"
    )
    failed_sources: List[str] = Field(default_factory=list)


class AcknowledgedResponse(BaseModel):
    """Result of broadcasting an alert-acknowledged signal."""
    listeners: int


class StatusChangeRequest(BaseModel):
    """Requested lifecycle transition for a batch."""
    status: BatchStatus
    destination: Optional[str] = None


class AllocationResponse(BaseModel):
    """Ranked inventory for an allocation request."""
    warehouse_id: Optional[str] = None
    candidates: List[RankedBatch]
