"""
API router for risk scoring.
"""
from fastapi import APIRouter

from freshtrack.api.v1.models.responses import RiskScoreResponse
from freshtrack.domain.models import RiskFactors
from freshtrack.services.domain.risk_model import (
    classify,
    compute_risk_score,
    recommendation,
    requires_early_intervention,
)


router = APIRouter(
    prefix="/risk",
    tags=["risk"],
)


@router.post(
    "/score",
    response_model=RiskScoreResponse,
    summary="Score a set of risk factors",
    description="""
    Compute the 0-100 spoilage risk score for the given factors.

    Weights: temperature deviation 25%, humidity deviation 15%,
    elapsed shelf life 35%, gas readings 15%, storage duration 10%.
    Scores up to 30 are fresh, up to 70 moderate, above 70 high.
    """,
)
async def score_factors(factors: RiskFactors) -> RiskScoreResponse:
    """
    Score risk factors.

    Args:
        factors: Risk inputs

    Returns:
        RiskScoreResponse with score, bucket and routing advice
    """
    score = compute_risk_score(factors)
    bucket = classify(score)
    return RiskScoreResponse(
        score=score,
        classification=bucket,
        recommendation=recommendation(bucket),
        requires_early_intervention=requires_early_intervention(score),
    )
