"""
Domain service: spoilage risk scoring for stored batches.

Converts environmental and temporal factors into a 0-100 risk score and a
freshness classification. Every function here is pure: no I/O, no hidden
state, and no exceptions for out-of-range input (values are clamped).

Sub-scores (each 0-100):
- Temperature deviation x 10
- Humidity deviation x 10
- Elapsed shelf-life percentage
- Gas readings (low=20, normal=50, high=90, averaged over three gases)
- Storage duration in days x 2
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from freshtrack.config import settings
from freshtrack.domain.models import (
    Batch,
    Classification,
    GasLevel,
    RiskFactors,
)

logger = logging.getLogger(__name__)

FRESH_MAX_SCORE = 30
MODERATE_MAX_SCORE = 70
EARLY_INTERVENTION_SCORE = 70

GAS_LEVEL_SCORES = {
    GasLevel.LOW: 20.0,
    GasLevel.NORMAL: 50.0,
    GasLevel.HIGH: 90.0,
}
NEUTRAL_GAS_SCORE = GAS_LEVEL_SCORES[GasLevel.NORMAL]

RECOMMENDATIONS = {
    Classification.FRESH: (
        "Batch is in optimal condition. Suitable for retail and quick commerce channels."
    ),
    Classification.MODERATE: (
        "Monitor closely. Prioritize for hotels, restaurants, or processing units."
    ),
    Classification.HIGH: (
        "High priority for immediate dispatch. Route to processing units or consider price adjustment."
    ),
}


@dataclass(frozen=True)
class RiskWeights:
    """Weight of each sub-score in the final risk score."""

    temperature: float = 0.25
    humidity: float = 0.15
    shelf_life: float = 0.35
    gas: float = 0.15
    duration: float = 0.10


DEFAULT_WEIGHTS = RiskWeights()


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    # NaN compares false everywhere, so it has to be caught explicitly
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def _gas_score(level: Optional[GasLevel]) -> float:
    if level is None:
        return NEUTRAL_GAS_SCORE
    return GAS_LEVEL_SCORES.get(GasLevel(level), NEUTRAL_GAS_SCORE)


def compute_risk_score(
    factors: RiskFactors,
    weights: RiskWeights = DEFAULT_WEIGHTS,
) -> int:
    """
    Compute the spoilage risk score for a set of factors.

    Args:
        factors: Deviation, shelf-life, gas and duration inputs
        weights: Sub-score weights (defaults to the canonical weighting)

    Returns:
        Integer score in [0, 100], rounded half-up
    """
    temperature_score = _clamp(max(0.0, factors.temperature_deviation) * 10)
    humidity_score = _clamp(max(0.0, factors.humidity_deviation) * 10)
    shelf_life_score = _clamp(factors.shelf_life_percentage)
    gas_score = (
        _gas_score(factors.ethylene)
        + _gas_score(factors.co2)
        + _gas_score(factors.ammonia)
    ) / 3
    duration_score = _clamp(max(0.0, factors.storage_duration_days) * 2)

    total = (
        temperature_score * weights.temperature
        + humidity_score * weights.humidity
        + shelf_life_score * weights.shelf_life
        + gas_score * weights.gas
        + duration_score * weights.duration
    )
    return int(math.floor(_clamp(total) + 0.5))


def classify(score: Optional[float]) -> Optional[Classification]:
    """
    Map a risk score to its freshness bucket.

    <=30 is fresh, 31-70 is moderate, >70 is high. An unscored batch
    (None) has no bucket.
    """
    if score is None:
        return None
    if score <= FRESH_MAX_SCORE:
        return Classification.FRESH
    if score <= MODERATE_MAX_SCORE:
        return Classification.MODERATE
    return Classification.HIGH


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_days(entry_date: datetime, now: Optional[datetime] = None) -> int:
    """Whole days from entry to ``now``, never negative."""
    now = _as_utc(now or datetime.now(timezone.utc))
    delta = now - _as_utc(entry_date)
    return max(0, delta.days)


def days_remaining(
    entry_date: datetime,
    shelf_life_days: int,
    now: Optional[datetime] = None,
) -> int:
    """
    Days of shelf life left for a batch.

    Args:
        entry_date: When the batch entered storage (naive values are UTC)
        shelf_life_days: Total shelf life in days
        now: Evaluation time, defaults to the current UTC time

    Returns:
        Remaining whole days; negative once the batch is past its shelf life
    """
    return shelf_life_days - elapsed_days(entry_date, now)


def risk_factors_for_batch(
    batch: Batch,
    now: Optional[datetime] = None,
    optimal_temperature: Optional[float] = None,
    optimal_humidity: Optional[float] = None,
) -> RiskFactors:
    """
    Derive risk factors from a batch's stored readings.

    Missing temperature/humidity readings count as no deviation and missing
    gas readings as neutral, so a fresh intake only scores its gas term.
    """
    if optimal_temperature is None:
        optimal_temperature = settings.optimal_temperature_c
    if optimal_humidity is None:
        optimal_humidity = settings.optimal_humidity_pct

    days = elapsed_days(batch.entry_date, now)
    temperature_deviation = (
        abs(batch.temperature - optimal_temperature)
        if batch.temperature is not None else 0.0
    )
    humidity_deviation = (
        abs(batch.humidity - optimal_humidity)
        if batch.humidity is not None else 0.0
    )

    return RiskFactors(
        temperature_deviation=temperature_deviation,
        humidity_deviation=humidity_deviation,
        shelf_life_percentage=_clamp(days / batch.shelf_life * 100),
        ethylene=batch.ethylene or GasLevel.NORMAL,
        co2=batch.co2 or GasLevel.NORMAL,
        ammonia=batch.ammonia,
        storage_duration_days=days,
    )


def score_batch(batch: Batch, now: Optional[datetime] = None) -> int:
    """Risk score of a batch from its stored readings."""
    factors = risk_factors_for_batch(batch, now=now)
    score = compute_risk_score(factors)
    logger.debug(f"Scored batch {batch.batch_id}: {score} ({factors})")
    return score


def recommendation(classification: Classification) -> str:
    """Routing advice for a freshness bucket."""
    return RECOMMENDATIONS[Classification(classification)]


def requires_early_intervention(score: int) -> bool:
    """Whether a batch should be dispatched ahead of routine allocation."""
    return score >= EARLY_INTERVENTION_SCORE
