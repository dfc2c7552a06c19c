"""Turn analysis and prediction results into user-facing insights."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from dss.schema import (
    Insight,
    InsightCategory,
    InsightSeverity,
    MatchResult,
    Prediction,
    RiskLevel,
    RiskType,
    UrgencyResult,
    to_utc,
    stable_id,
    utcnow,
)

URGENT_SCORE = 70
INSIGHT_TTL = timedelta(days=7)

_RISK_LABELS = {
    RiskType.CARDIOVASCULAR: "Cardiovascular disease",
    RiskType.DIABETES: "Type 2 diabetes",
    RiskType.HYPERTENSION: "Hypertension",
    RiskType.OBESITY: "Obesity",
    RiskType.WEIGHT_TREND: "Weight change",
}


def _prediction_insight(prediction: Prediction, created_at: datetime, scope: str) -> Insight:
    label = _RISK_LABELS[prediction.type]
    level = prediction.risk_level.value.lower()
    message = f"{label} risk is {level} based on your readings from the last {prediction.basis.get('window_days', '?')} days."
    if prediction.recommendations:
        message += " " + prediction.recommendations[0]
    return Insight(
        insight_id=stable_id(scope, "insight", prediction.prediction_id, prediction.risk_level.value),
        category=InsightCategory.RISK_PREDICTION,
        title=f"{label} risk: {prediction.risk_level.value}",
        message=message,
        severity=InsightSeverity.HIGH if prediction.risk_level is RiskLevel.HIGH else InsightSeverity.MEDIUM,
        created_at=created_at,
        expires_at=created_at + INSIGHT_TTL,
        source_id=prediction.prediction_id,
    )


def _urgency_insight(
    top: MatchResult, urgency: UrgencyResult, created_at: datetime, scope: str
) -> Insight:
    message = (
        f"Your symptoms most closely match {top.name} "
        f"({top.match_score * 100:.0f}% match, urgency {urgency.urgency_score}/100). "
        "Please seek medical care within the next 24-48 hours."
    )
    if urgency.critical_symptoms:
        message += f" Warning signs: {', '.join(urgency.critical_symptoms)}."
    return Insight(
        insight_id=stable_id(
            scope,
            "insight",
            "urgency",
            top.disease_id,
            urgency.urgency_score,
            ",".join(top.matched_symptoms),
        ),
        category=InsightCategory.SYMPTOM_ANALYSIS,
        title="Symptoms need prompt attention",
        message=message,
        severity=InsightSeverity.HIGH,
        created_at=created_at,
        expires_at=created_at + INSIGHT_TTL,
        source_id=top.disease_id,
    )


def generate(
    match_results: Sequence[MatchResult],
    urgency: Optional[UrgencyResult],
    predictions: Sequence[Prediction],
    created_at: Optional[datetime] = None,
    scope: str = "",
) -> List[Insight]:
    """
    Build insights for results worth reporting.

    One insight per prediction at MODERATE risk or above, plus one when the
    urgency score reaches 70, summarizing the best matching disease. Insight
    ids derive from their source so repeated runs yield the same set.
    """
    created_at = to_utc(created_at) if created_at is not None else utcnow()
    insights: List[Insight] = []

    if urgency is not None and urgency.urgency_score >= URGENT_SCORE and match_results:
        insights.append(_urgency_insight(match_results[0], urgency, created_at, scope))

    for prediction in predictions:
        if prediction.risk_level.rank >= RiskLevel.MODERATE.rank:
            insights.append(_prediction_insight(prediction, created_at, scope))

    return insights
