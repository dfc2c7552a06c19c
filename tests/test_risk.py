import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from dss.errors import ValidationError
from dss.risk import predict
from dss.schema import HealthMetricRecord, MetricType, RiskLevel, RiskType

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def _metric(metric_type, days_ago, value=None, systolic=None, diastolic=None):
    return HealthMetricRecord(
        metric_type=metric_type,
        value=value,
        systolic=systolic,
        diastolic=diastolic,
        measured_at=NOW - timedelta(days=days_ago),
    )


def _bp(days_ago, systolic, diastolic):
    return _metric(MetricType.BLOOD_PRESSURE, days_ago, systolic=systolic, diastolic=diastolic)


def _by_type(predictions):
    return {p.type: p for p in predictions}


def test_two_blood_pressure_points_are_not_enough():
    history = [_bp(5, 150, 95), _bp(2, 152, 96)]
    predictions = predict(history, 30, as_of=NOW)
    assert RiskType.HYPERTENSION not in _by_type(predictions)


def test_high_blood_pressure():
    history = [_bp(9, 148, 92), _bp(5, 150, 95), _bp(1, 152, 96)]
    predictions = _by_type(predict(history, 30, as_of=NOW))
    hypertension = predictions[RiskType.HYPERTENSION]
    assert hypertension.risk_level is RiskLevel.HIGH
    assert hypertension.confidence == 65.0
    assert hypertension.basis["window_days"] == 30
    assert hypertension.valid_until == NOW + timedelta(days=180)
    cardio = predictions[RiskType.CARDIOVASCULAR]
    assert cardio.risk_level is RiskLevel.MODERATE
    assert cardio.risk_score == 25.0


def test_readings_outside_window_ignored():
    history = [_bp(40, 150, 95), _bp(35, 150, 95), _bp(31, 150, 95), _bp(3, 150, 95)]
    assert predict(history, 30, as_of=NOW) == []


def test_blood_pressure_without_diastolic_ignored():
    history = [_bp(6, 150, None), _bp(4, 150, 95), _bp(2, 150, 95)]
    assert RiskType.HYPERTENSION not in _by_type(predict(history, 30, as_of=NOW))


@pytest.mark.parametrize("window", [0, -7, True, "30"])
def test_invalid_window(window):
    with pytest.raises(ValidationError):
        predict([], window, as_of=NOW)


def test_diabetes_levels():
    normal = [_metric(MetricType.BLOOD_SUGAR, d, v) for d, v in [(9, 90), (5, 92), (1, 91)]]
    elevated = [_metric(MetricType.BLOOD_SUGAR, d, v) for d, v in [(9, 105), (5, 108), (1, 110)]]
    high = [_metric(MetricType.BLOOD_SUGAR, d, v) for d, v in [(9, 130), (5, 135), (1, 140)]]
    assert _by_type(predict(normal, 30, as_of=NOW))[RiskType.DIABETES].risk_level is RiskLevel.LOW
    assert _by_type(predict(elevated, 30, as_of=NOW))[RiskType.DIABETES].risk_level is RiskLevel.MODERATE
    assert _by_type(predict(high, 30, as_of=NOW))[RiskType.DIABETES].risk_level is RiskLevel.HIGH


def test_rising_blood_sugar_raises_level():
    rising = [_metric(MetricType.BLOOD_SUGAR, d, v) for d, v in [(20, 80), (10, 95), (0, 110)]]
    diabetes = _by_type(predict(rising, 30, as_of=NOW))[RiskType.DIABETES]
    assert diabetes.risk_level is RiskLevel.MODERATE
    assert diabetes.basis["rising"] is True
    assert diabetes.basis["blood_sugar"]["slope_per_day"] == pytest.approx(1.5)


def test_weight_trend():
    history = [_metric(MetricType.WEIGHT, d, v) for d, v in [(20, 80), (10, 85), (1, 90)]]
    trend = _by_type(predict(history, 30, as_of=NOW))[RiskType.WEIGHT_TREND]
    assert trend.risk_level is RiskLevel.HIGH
    assert trend.risk_score == 12.5
    assert trend.valid_until == NOW + timedelta(days=90)


def test_obesity_from_bmi():
    history = [_metric(MetricType.BMI, d, v) for d, v in [(9, 31), (5, 31.5), (1, 32)]]
    predictions = _by_type(predict(history, 30, as_of=NOW))
    assert predictions[RiskType.OBESITY].risk_level is RiskLevel.HIGH
    assert predictions[RiskType.CARDIOVASCULAR].risk_score == 20.0


def test_prediction_ids_are_repeatable():
    history = [_bp(9, 148, 92), _bp(5, 150, 95), _bp(1, 152, 96)]
    first = predict(history, 30, as_of=NOW, scope="u1")
    second = predict(history, 30, as_of=NOW, scope="u1")
    other = predict(history, 30, as_of=NOW, scope="u2")
    assert [p.prediction_id for p in first] == [p.prediction_id for p in second]
    assert {p.prediction_id for p in first}.isdisjoint(p.prediction_id for p in other)


def test_rerun_on_same_day_keeps_prediction_ids():
    history = [_bp(9, 148, 92), _bp(5, 150, 95), _bp(1, 152, 96)]
    morning = predict(history, 30, as_of=NOW, scope="u1")
    evening = predict(history, 30, as_of=NOW + timedelta(hours=6), scope="u1")
    next_day = predict(history, 30, as_of=NOW + timedelta(days=1), scope="u1")
    assert [p.prediction_id for p in morning] == [p.prediction_id for p in evening]
    assert {p.prediction_id for p in morning}.isdisjoint(p.prediction_id for p in next_day)


def test_predictions_follow_assessor_order():
    history = (
        [_bp(d, 150, 95) for d in (9, 5, 1)]
        + [_metric(MetricType.BLOOD_SUGAR, d, 130) for d in (9, 5, 1)]
        + [_metric(MetricType.BMI, d, 27) for d in (9, 5, 1)]
        + [_metric(MetricType.WEIGHT, d, 80) for d in (9, 5, 1)]
    )
    types = [p.type for p in predict(history, 30, as_of=NOW)]
    assert types == [
        RiskType.CARDIOVASCULAR,
        RiskType.DIABETES,
        RiskType.HYPERTENSION,
        RiskType.OBESITY,
        RiskType.WEIGHT_TREND,
    ]
