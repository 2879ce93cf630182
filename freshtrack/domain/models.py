"""
Domain models for batches, risk inputs, change events and alert counts.

These models represent the core domain entities and should be independent
of any infrastructure concerns (API clients, change feeds, etc.).
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class BatchStatus(str, Enum):
    """Lifecycle status of a batch."""
    ACTIVE = "active"
    DISPATCHED = "dispatched"
    EXPIRED = "expired"


class GasLevel(str, Enum):
    """Qualitative gas sensor reading."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Classification(str, Enum):
    """Freshness bucket derived from a risk score."""
    FRESH = "fresh"
    MODERATE = "moderate"
    HIGH = "high"


class ViewerRole(str, Enum):
    """Role of the user looking at an alert count."""
    WAREHOUSE_OWNER = "warehouse_owner"
    WAREHOUSE_MANAGER = "warehouse_manager"
    QUICK_COMMERCE = "quick_commerce"


class Batch(BaseModel):
    """A quantity of one crop/variety stored in one warehouse zone."""
    id: str = Field(description="Internal row id, identity key of the live cache")
    batch_id: str = Field(description="Stable, externally visible batch id")
    warehouse_id: str
    zone: str
    crop: str
    variety: Optional[str] = None
    quantity: float = Field(ge=0)
    unit: str = "kg"
    entry_date: datetime
    shelf_life: int = Field(gt=0, description="Shelf life in days")
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    status: BatchStatus = BatchStatus.ACTIVE
    temperature: Optional[float] = Field(default=None, description="Temperature in °C")
    humidity: Optional[float] = Field(default=None, description="Relative humidity in %")
    ethylene: Optional[GasLevel] = None
    co2: Optional[GasLevel] = None
    ammonia: Optional[GasLevel] = None
    destination: Optional[str] = None
    dispatch_date: Optional[datetime] = None


class RiskFactors(BaseModel):
    """Inputs to the risk score. Not persisted."""
    temperature_deviation: float = 0.0
    humidity_deviation: float = 0.0
    shelf_life_percentage: float = 0.0
    ethylene: GasLevel = GasLevel.NORMAL
    co2: GasLevel = GasLevel.NORMAL
    ammonia: Optional[GasLevel] = None
    storage_duration_days: float = 0.0


class ChangeType(str, Enum):
    """Kind of change-feed notification."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    One change-feed notification on the batch collection.

    Inserts and updates carry the new record; a delete may carry only the
    id of the removed row.
    """
    type: ChangeType
    record: Optional[Batch] = None
    record_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "ChangeEvent":
        if self.type != ChangeType.DELETE and self.record is None:
            raise ValueError(f"{self.type.value} event requires a record")
        if self.record is None and self.record_id is None:
            raise ValueError("DELETE event requires a record or a record_id")
        return self

    @property
    def key(self) -> str:
        """Identity of the affected row."""
        return self.record.id if self.record is not None else self.record_id


class InventoryStats(BaseModel):
    """Statistics derived from the current cache contents."""
    total: int = 0
    total_quantity: float = 0.0
    fresh: int = 0
    moderate: int = 0
    high: int = 0
    unscored: int = 0


class AlertScope(BaseModel):
    """Warehouse and viewer role an alert count is computed for."""
    warehouse_id: Optional[str] = None
    role: ViewerRole = ViewerRole.WAREHOUSE_MANAGER


class AlertCount(BaseModel):
    """Unacknowledged alerts summed over the sources visible to a scope."""
    count: int = 0
    warehouse_id: Optional[str] = None
    queried_sources: List[str] = Field(default_factory=list)
    failed_sources: List[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_sources

    @property
    def all_failed(self) -> bool:
        return bool(self.queried_sources) and (
            len(self.failed_sources) == len(self.queried_sources)
        )


class BatchCreate(BaseModel):
    """Intake payload for a new batch."""
    batch_id: str
    warehouse_id: str
    zone: str
    crop: str
    variety: Optional[str] = None
    quantity: float = Field(ge=0)
    unit: str = "kg"
    shelf_life: int = Field(gt=0)
    entry_date: Optional[datetime] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    ethylene: Optional[GasLevel] = None
    co2: Optional[GasLevel] = None
    ammonia: Optional[GasLevel] = None


class ReadingsUpdate(BaseModel):
    """Environmental readings reported for a stored batch."""
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    ethylene: Optional[GasLevel] = None
    co2: Optional[GasLevel] = None
    ammonia: Optional[GasLevel] = None


class AllocationRequest(BaseModel):
    """Demand-side request that current inventory is ranked against."""
    crop: Optional[str] = None
    quantity: float = Field(gt=0)
    location: Optional[str] = None
    notes: Optional[str] = None
    deadline: Optional[datetime] = None


class RankedBatch(BaseModel):
    """A batch with its allocation match score."""
    batch: Batch
    match_score: int
    classification: Classification
