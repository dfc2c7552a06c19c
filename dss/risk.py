"""
Longitudinal risk prediction over a trailing window of health metrics.

Every assessor needs at least ``MIN_DATA_POINTS`` usable readings inside
the window. With fewer readings the risk type is skipped; that is an
expected outcome, not an error.
"""
from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from dss.errors import ValidationError
from dss.schema import (
    HealthMetricRecord,
    MetricType,
    Prediction,
    RiskLevel,
    RiskType,
    stable_id,
    to_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

MIN_DATA_POINTS = 3
VALIDITY = timedelta(days=180)
TREND_VALIDITY = timedelta(days=90)


@dataclass(frozen=True)
class Series:
    """Time-ordered readings of one scalar, with mean and daily slope."""

    points: Tuple[Tuple[datetime, float], ...]

    def __len__(self) -> int:
        return len(self.points)

    @property
    def values(self) -> List[float]:
        return [v for _, v in self.points]

    @property
    def mean(self) -> float:
        return statistics.fmean(self.values)

    @property
    def slope_per_day(self) -> float:
        if len(self.points) < 2:
            return 0.0
        origin = self.points[0][0]
        xs = [(ts - origin).total_seconds() / 86400 for ts, _ in self.points]
        try:
            return statistics.linear_regression(xs, self.values).slope
        except statistics.StatisticsError:
            # all readings share one timestamp
            return 0.0

    def summary(self) -> dict:
        return {
            "count": len(self),
            "mean": round(self.mean, 2),
            "slope_per_day": round(self.slope_per_day, 3),
            "first": self.points[0][1],
            "last": self.points[-1][1],
        }


def _series(
    metrics: Iterable[HealthMetricRecord],
    metric_type: MetricType,
    field: str = "value",
) -> Series:
    points = []
    for m in metrics:
        if m.metric_type is not metric_type:
            continue
        value = getattr(m, field)
        if value is None:
            logger.debug("Ignoring %s reading %s without %s", metric_type.value, m.metric_id, field)
            continue
        points.append((m.measured_at, float(value)))
    points.sort(key=lambda p: p[0])
    return Series(tuple(points))


def _blood_pressure(metrics: Sequence[HealthMetricRecord]) -> Tuple[Series, Series]:
    readings = [
        m
        for m in metrics
        if m.metric_type is MetricType.BLOOD_PRESSURE
        and m.systolic is not None
        and m.diastolic is not None
    ]
    return (
        _series(readings, MetricType.BLOOD_PRESSURE, "systolic"),
        _series(readings, MetricType.BLOOD_PRESSURE, "diastolic"),
    )


def _confidence(points: int) -> float:
    return float(min(100, 50 + 5 * points))


@dataclass(frozen=True)
class Assessment:
    level: RiskLevel
    basis: dict
    recommendations: List[str]
    points: int
    risk_score: Optional[float] = None


def assess_hypertension(metrics: Sequence[HealthMetricRecord]) -> Optional[Assessment]:
    systolic, diastolic = _blood_pressure(metrics)
    if len(systolic) < MIN_DATA_POINTS:
        return None
    sys_mean, dia_mean = systolic.mean, diastolic.mean
    rising = systolic.slope_per_day >= 0.5
    if sys_mean >= 140 or dia_mean >= 90:
        level = RiskLevel.HIGH
    elif sys_mean >= 130 or dia_mean >= 80 or rising:
        level = RiskLevel.MODERATE
    else:
        level = RiskLevel.LOW
    recommendations = ["Measure your blood pressure daily at the same time."]
    if level is not RiskLevel.LOW:
        recommendations += [
            "Reduce salt intake to less than 5 g per day.",
            "Limit alcohol and increase physical activity.",
        ]
    if level is RiskLevel.HIGH:
        recommendations.insert(0, "See a cardiologist within 1-2 weeks.")
    return Assessment(
        level=level,
        basis={"systolic": systolic.summary(), "diastolic": diastolic.summary(), "rising": rising},
        recommendations=recommendations,
        points=len(systolic),
    )


def assess_diabetes(metrics: Sequence[HealthMetricRecord]) -> Optional[Assessment]:
    sugar = _series(metrics, MetricType.BLOOD_SUGAR)
    if len(sugar) < MIN_DATA_POINTS:
        return None
    rising = sugar.slope_per_day >= 1.0
    if sugar.mean >= 126:
        level = RiskLevel.HIGH
    elif sugar.mean >= 100 or rising:
        level = RiskLevel.MODERATE
    else:
        level = RiskLevel.LOW
    recommendations = [
        "Cut down on sugar and refined carbohydrates.",
        "Exercise at least 30 minutes a day.",
    ]
    if level is RiskLevel.HIGH:
        recommendations.insert(0, "Ask your doctor for an HbA1c test.")
    return Assessment(
        level=level,
        basis={"blood_sugar": sugar.summary(), "rising": rising},
        recommendations=recommendations,
        points=len(sugar),
    )


def assess_cardiovascular(metrics: Sequence[HealthMetricRecord]) -> Optional[Assessment]:
    systolic, _ = _blood_pressure(metrics)
    cholesterol = _series(metrics, MetricType.CHOLESTEROL)
    bmi = _series(metrics, MetricType.BMI)
    heart_rate = _series(metrics, MetricType.HEART_RATE)
    used = len(systolic) + len(cholesterol) + len(bmi) + len(heart_rate)
    if used < MIN_DATA_POINTS:
        return None

    risk_points = 0
    factors: List[str] = []
    basis: dict = {}
    if systolic.points:
        basis["systolic"] = systolic.summary()
        if systolic.mean >= 140:
            risk_points += 25
            factors.append("high blood pressure")
        elif systolic.mean >= 130:
            risk_points += 10
            factors.append("elevated blood pressure")
    if cholesterol.points:
        basis["cholesterol"] = cholesterol.summary()
        if cholesterol.mean >= 240:
            risk_points += 25
            factors.append("high cholesterol")
        elif cholesterol.mean >= 200:
            risk_points += 15
            factors.append("borderline cholesterol")
    if bmi.points:
        basis["bmi"] = bmi.summary()
        if bmi.mean >= 30:
            risk_points += 20
            factors.append("obesity")
        elif bmi.mean > 25:
            risk_points += 10
            factors.append("overweight")
    if heart_rate.points:
        basis["heart_rate"] = heart_rate.summary()
        if heart_rate.mean > 100:
            risk_points += 15
            factors.append("elevated resting heart rate")
    basis["risk_factors"] = factors

    if risk_points >= 40:
        level = RiskLevel.HIGH
    elif risk_points >= 20:
        level = RiskLevel.MODERATE
    else:
        level = RiskLevel.LOW
    recommendations = [
        "Exercise regularly, at least 150 minutes per week.",
        "Follow a DASH diet: more vegetables, less salt.",
        "Maintain a healthy weight.",
    ]
    if level is RiskLevel.HIGH:
        recommendations.insert(0, "See a cardiologist for a detailed evaluation.")
    return Assessment(
        level=level,
        basis=basis,
        recommendations=recommendations,
        points=used,
        risk_score=float(risk_points),
    )


def assess_obesity(metrics: Sequence[HealthMetricRecord]) -> Optional[Assessment]:
    bmi = _series(metrics, MetricType.BMI)
    if len(bmi) < MIN_DATA_POINTS:
        return None
    if bmi.mean >= 30:
        level = RiskLevel.HIGH
    elif bmi.mean >= 25:
        level = RiskLevel.MODERATE
    else:
        level = RiskLevel.LOW
    recommendations = ["Keep track of your weight weekly."]
    if level is not RiskLevel.LOW:
        recommendations.append("Aim for a 5-10% weight reduction with diet and exercise.")
    return Assessment(
        level=level,
        basis={"bmi": bmi.summary()},
        recommendations=recommendations,
        points=len(bmi),
    )


def assess_weight_trend(metrics: Sequence[HealthMetricRecord]) -> Optional[Assessment]:
    weight = _series(metrics, MetricType.WEIGHT)
    if len(weight) < MIN_DATA_POINTS:
        return None
    first, last = weight.points[0][1], weight.points[-1][1]
    if first <= 0:
        return None
    change = last - first
    change_percent = change / first * 100
    if abs(change_percent) > 10:
        level = RiskLevel.HIGH
    elif abs(change_percent) > 5:
        level = RiskLevel.MODERATE
    else:
        level = RiskLevel.LOW
    if change > 5:
        recommendations = ["Significant weight gain: review your diet.", "Increase physical activity."]
    elif change < -5:
        recommendations = ["Significant weight loss: check the cause with a doctor.", "Make sure your nutrition is adequate."]
    else:
        recommendations = ["Your weight is stable, keep it up."]
    basis = weight.summary()
    basis.update(change=round(change, 2), change_percent=round(change_percent, 2))
    return Assessment(
        level=level,
        basis={"weight": basis},
        recommendations=recommendations,
        points=len(weight),
        risk_score=round(abs(change_percent), 2),
    )


ASSESSORS: List[Tuple[RiskType, Callable[[Sequence[HealthMetricRecord]], Optional[Assessment]], timedelta]] = [
    (RiskType.CARDIOVASCULAR, assess_cardiovascular, VALIDITY),
    (RiskType.DIABETES, assess_diabetes, VALIDITY),
    (RiskType.HYPERTENSION, assess_hypertension, VALIDITY),
    (RiskType.OBESITY, assess_obesity, VALIDITY),
    (RiskType.WEIGHT_TREND, assess_weight_trend, TREND_VALIDITY),
]


def validate_window(window_days: int) -> int:
    if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days < 1:
        raise ValidationError(f"window_days must be a positive integer, got {window_days!r}")
    return window_days


def predict(
    history: Iterable[HealthMetricRecord],
    window_days: int,
    as_of: Optional[datetime] = None,
    scope: str = "",
) -> List[Prediction]:
    """
    Run every risk assessor over the readings of the trailing ``window_days``.

    Prediction ids derive from ``scope``, the risk type, the window and the
    calendar day of ``as_of``: a rerun on the same day replaces the earlier result.
    """
    validate_window(window_days)

    as_of = to_utc(as_of) if as_of is not None else utcnow()
    start = as_of - timedelta(days=window_days)
    window = [m for m in history if start < m.measured_at <= as_of]

    predictions: List[Prediction] = []
    for risk_type, assess, validity in ASSESSORS:
        assessment = assess(window)
        if assessment is None:
            logger.debug("Not enough data for %s in the last %d days", risk_type.value, window_days)
            continue
        predictions.append(
            Prediction(
                prediction_id=stable_id(
                    scope, "prediction", risk_type.value, window_days, as_of.date().isoformat()
                ),
                type=risk_type,
                risk_level=assessment.level,
                risk_score=assessment.risk_score,
                confidence=_confidence(assessment.points),
                basis=dict(assessment.basis, window_days=window_days),
                recommendations=assessment.recommendations,
                computed_at=as_of,
                valid_until=as_of + validity,
            )
        )

    logger.info(
        "Computed %d predictions from %d readings in a %d-day window",
        len(predictions),
        len(window),
        window_days,
    )
    return predictions
