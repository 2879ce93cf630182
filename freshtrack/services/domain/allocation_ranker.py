"""
Domain service: rank stored batches against an allocation request.

Composite match score (0-100):
- Risk priority: riskier batches go out first (40%)
- Freshness fit: bucket vs. the demand type inferred from the request (25%)
- Deadline proximity: urgent requests bump the score (20%)
- Utilization: batches closest to the requested quantity (15%)
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from freshtrack.domain.models import (
    AllocationRequest,
    Batch,
    BatchStatus,
    Classification,
    RankedBatch,
)
from freshtrack.services.domain.risk_model import classify

logger = logging.getLogger(__name__)

DEMAND_KEYWORDS: dict[str, Classification] = {
    "retail": Classification.FRESH,
    "supermarket": Classification.FRESH,
    "export": Classification.FRESH,
    "hotel": Classification.MODERATE,
    "restaurant": Classification.MODERATE,
    "catering": Classification.MODERATE,
    "wholesale": Classification.MODERATE,
    "processing": Classification.HIGH,
    "factory": Classification.HIGH,
    "industrial": Classification.HIGH,
}

_ADJACENT = {
    frozenset({Classification.FRESH, Classification.MODERATE}),
}


@dataclass
class AllocationConfig:
    """Weights for the allocation match score."""

    risk_weight: float = 0.40
    freshness_weight: float = 0.25
    deadline_weight: float = 0.20
    utilization_weight: float = 0.15

    demand_keywords: dict[str, Classification] = field(
        default_factory=lambda: dict(DEMAND_KEYWORDS)
    )


class AllocationRanker:
    """
    Domain service ranking batches for an allocation request.

    Only active batches of the requested crop are ranked; the caller
    supplies them (usually the live inventory cache contents).
    """

    def __init__(self, config: Optional[AllocationConfig] = None):
        self.config = config or AllocationConfig()

    def infer_demand_type(self, request: AllocationRequest) -> Optional[Classification]:
        """Freshness bucket implied by keywords in the request's location/notes."""
        text = f"{request.location or ''} {request.notes or ''}".lower()
        for keyword, tier in self.config.demand_keywords.items():
            if keyword in text:
                return tier
        return None

    @staticmethod
    def _risk_priority(score: int) -> float:
        if score > 70:
            return 100.0
        if score > 50:
            return 70.0
        if score > 30:
            return 40.0
        return 20.0

    @staticmethod
    def _freshness_match(
        tier: Classification,
        demand: Optional[Classification],
    ) -> float:
        if demand is None:
            return 50.0
        if tier == demand:
            return 100.0
        if frozenset({tier, demand}) in _ADJACENT:
            return 40.0
        return 10.0

    @staticmethod
    def _deadline_score(deadline: Optional[datetime], now: datetime) -> float:
        if deadline is None:
            return 50.0
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        days_left = (deadline - now).total_seconds() / 86400
        if days_left <= 1:
            return 100.0
        if days_left <= 3:
            return 85.0
        if days_left <= 7:
            return 60.0
        return 30.0

    def score(
        self,
        batch: Batch,
        request: AllocationRequest,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Score how well a batch serves a request.

        Args:
            batch: Candidate batch
            request: Allocation request
            now: Evaluation time for deadline proximity

        Returns:
            Integer match score in [0, 100]
        """
        now = now or datetime.now(timezone.utc)
        risk = batch.risk_score or 0
        tier = classify(risk)

        batch_quantity = batch.quantity or 1
        utilization = min(request.quantity / batch_quantity, 1.0) * 100

        composite = (
            self._risk_priority(risk) * self.config.risk_weight
            + self._freshness_match(tier, self.infer_demand_type(request))
            * self.config.freshness_weight
            + self._deadline_score(request.deadline, now) * self.config.deadline_weight
            + utilization * self.config.utilization_weight
        )
        return int(math.floor(max(0.0, min(100.0, composite)) + 0.5))

    def rank(
        self,
        batches: list[Batch],
        request: AllocationRequest,
        now: Optional[datetime] = None,
    ) -> list[RankedBatch]:
        """
        Rank eligible batches for a request, best match first.

        Args:
            batches: Candidate batches
            request: Allocation request
            now: Evaluation time for deadline proximity

        Returns:
            RankedBatch list sorted by descending match score
        """
        eligible = [
            b for b in batches
            if b.status == BatchStatus.ACTIVE
            and (request.crop is None or b.crop.lower() == request.crop.lower())
        ]
        ranked = [
            RankedBatch(
                batch=b,
                match_score=self.score(b, request, now=now),
                classification=classify(b.risk_score or 0),
            )
            for b in eligible
        ]
        ranked.sort(key=lambda r: r.match_score, reverse=True)
        logger.info(f"Ranked {len(ranked)}/{len(batches)} batches for {request.crop or 'any crop'}")
        return ranked
