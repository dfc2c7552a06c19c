import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from dss.config import Settings
from dss.errors import NotFoundError, ValidationError
from dss.knowledge_base import KnowledgeBase
from dss.schema import (
    HealthMetricRecord,
    MetricType,
    RiskType,
    SymptomRecord,
    UrgencyLevel,
)
from dss.service import DecisionSupportService

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

FLU = {
    "disease_id": "flu",
    "name": "Flu",
    "symptom_weights": {"fever": 0.6, "cough": 0.4},
    "critical_symptoms": ["fever"],
    "min_match_threshold": 0.3,
}


class FakeSymptoms:
    def __init__(self, records=None):
        self.records = records or {}

    def get_active_symptoms(self, user_id):
        return [r for r in self.records.get(user_id, []) if r.end_date is None]


class FakeMetrics:
    def __init__(self, records=None):
        self.records = records or {}
        self.calls = []

    def get_history(self, user_id, metric_type=None, window_days=None):
        self.calls.append((user_id, metric_type, window_days))
        return list(self.records.get(user_id, []))


class FakeInsights:
    def __init__(self):
        self.rows = {}

    def save_all(self, user_id, insights):
        added = 0
        for insight in insights:
            if insight.insight_id not in self.rows:
                self.rows[insight.insight_id] = (user_id, insight)
                added += 1
        return added

    def list(self, user_id, unread_only=False, since=None):
        out = [i for u, i in self.rows.values() if u == user_id]
        if unread_only:
            out = [i for i in out if not i.read]
        if since is not None:
            out = [i for i in out if i.created_at >= since]
        return sorted(out, key=lambda i: i.created_at, reverse=True)

    def mark_read(self, user_id, insight_id):
        row = self.rows.get(insight_id)
        if row is None or row[0] != user_id:
            return None
        updated = row[1].model_copy(update={"read": True})
        self.rows[insight_id] = (user_id, updated)
        return updated

    def delete(self, user_id, insight_id):
        row = self.rows.get(insight_id)
        if row is None or row[0] != user_id:
            return False
        del self.rows[insight_id]
        return True

    def delete_expired(self, now):
        expired = [k for k, (_, i) in self.rows.items() if i.expires_at and i.expires_at < now]
        for key in expired:
            del self.rows[key]
        return len(expired)


class FakePredictions:
    def __init__(self):
        self.rows = {}

    def save_all(self, user_id, predictions):
        for p in predictions:
            self.rows[p.prediction_id] = (user_id, p)

    def list(self, user_id, risk_type=None, valid_at=None):
        return [
            p for u, p in self.rows.values()
            if u == user_id
            and (risk_type is None or p.type == risk_type)
            and (valid_at is None or p.valid_until is None or p.valid_until > valid_at)
        ]

    def delete(self, user_id, prediction_id):
        row = self.rows.get(prediction_id)
        if row is None or row[0] != user_id:
            return False
        del self.rows[prediction_id]
        return True

    def delete_expired(self, now):
        expired = [k for k, (_, p) in self.rows.items() if p.valid_until and p.valid_until < now]
        for key in expired:
            del self.rows[key]
        return len(expired)


def _bp(days_ago, systolic, diastolic):
    return HealthMetricRecord(
        metric_type=MetricType.BLOOD_PRESSURE,
        systolic=systolic,
        diastolic=diastolic,
        measured_at=NOW - timedelta(days=days_ago),
    )


@pytest.fixture
def service():
    symptoms = FakeSymptoms(
        {
            "u1": [
                SymptomRecord(
                    canonical_name="feverish", severity="severe", start_date=NOW - timedelta(days=10)
                )
            ]
        }
    )
    metrics = FakeMetrics({"u1": [_bp(9, 148, 92), _bp(5, 150, 95), _bp(1, 152, 96)]})
    return DecisionSupportService(
        knowledge_base=KnowledgeBase.from_records([FLU]),
        symptoms=symptoms,
        metrics=metrics,
        insights=FakeInsights(),
        predictions=FakePredictions(),
        clock=lambda: NOW,
    )


def test_analyze_symptoms(service):
    response = service.analyze_symptoms("u1")
    assert [d.disease_id for d in response.possible_diseases] == ["flu"]
    assert response.urgency_score == 71
    assert response.urgency_level is UrgencyLevel.HIGH
    assert response.critical_symptoms == ["fever"]
    assert response.analysis_note
    assert len(service.list_insights("u1")) == 1


def test_analysis_twice_keeps_one_insight(service):
    service.analyze_symptoms("u1")
    [insight] = service.list_insights("u1")
    service.mark_insight_read("u1", insight.insight_id)
    service.analyze_symptoms("u1")
    [again] = service.list_insights("u1")
    assert again.insight_id == insight.insight_id
    assert again.read


def test_analyze_without_symptoms(service):
    response = service.analyze_symptoms("nobody")
    assert response.possible_diseases == []
    assert response.urgency_score == 0
    assert response.analysis_note == "No active symptoms are being tracked."
    assert service.list_insights("nobody") == []


def test_analysis_reports_unknown_symptoms(service):
    service.symptoms.records["u2"] = [
        SymptomRecord(canonical_name="tingling toes", severity="mild", start_date=NOW - timedelta(days=1))
    ]
    with pytest.warns(UserWarning):
        response = service.analyze_symptoms("u2")
    assert response.unknown_symptoms == ["tingling toes"]
    assert response.possible_diseases == []


def test_max_conditions_limits_results():
    kb = KnowledgeBase.from_records(
        [
            {"disease_id": f"d{i}", "name": f"Disease {i}", "symptom_weights": {"fever": 1, f"s{i}": 1}}
            for i in range(8)
        ]
    )
    symptoms = FakeSymptoms(
        {"u1": [SymptomRecord(canonical_name="fever", severity="mild", start_date=NOW)]}
    )
    service = DecisionSupportService(
        kb, symptoms, FakeMetrics(), FakeInsights(), FakePredictions(),
        settings=Settings(max_conditions=3), clock=lambda: NOW,
    )
    assert len(service.analyze_symptoms("u1").possible_diseases) == 3


def test_predict_risks_stores_results(service):
    predictions = service.predict_risks("u1")
    types = {p.type for p in predictions}
    assert RiskType.HYPERTENSION in types
    assert service.metrics.calls == [("u1", None, 30)]
    assert {p.prediction_id for p in service.list_predictions("u1")} == {
        p.prediction_id for p in predictions
    }
    assert [p.type for p in service.list_predictions("u1", RiskType.HYPERTENSION)] == [
        RiskType.HYPERTENSION
    ]
    assert len(service.list_insights("u1")) == 2


def test_predict_risks_custom_window(service):
    service.predict_risks("u1", window_days=7)
    assert service.metrics.calls[-1] == ("u1", None, 7)


def test_predict_risks_rejects_bad_window(service):
    with pytest.raises(ValidationError):
        service.predict_risks("u1", window_days=-5)
    assert service.list_predictions("u1") == []


def test_missing_or_foreign_records_not_found(service):
    service.analyze_symptoms("u1")
    [insight] = service.list_insights("u1")
    with pytest.raises(NotFoundError):
        service.mark_insight_read("u2", insight.insight_id)
    with pytest.raises(NotFoundError):
        service.delete_insight("u1", "missing")
    with pytest.raises(NotFoundError):
        service.delete_prediction("u1", "missing")
    service.delete_insight("u1", insight.insight_id)
    assert service.list_insights("u1") == []


def test_unread_count_and_dashboard(service):
    service.analyze_symptoms("u1")
    service.predict_risks("u1")
    assert service.unread_insight_count("u1") == 3
    board = service.dashboard("u1")
    assert board["unread_insights_count"] == 3
    assert len(board["recent_insights"]) == 3
    assert board["active_predictions"]
    assert board["last_updated"] == NOW

    service.clock = lambda: NOW + timedelta(days=8)
    board = service.dashboard("u1")
    assert board["recent_insights"] == []
    assert board["active_predictions"]


def test_evaluation_writes_nothing_until_stored(service):
    response, insights = service.evaluate_symptoms("u1")
    assert response.urgency_score == 71
    assert len(insights) == 1
    assert service.list_insights("u1") == []
    assert service.store_insights("u1", insights) == 1
    assert service.store_insights("u1", insights) == 0

    predictions, risk_insights = service.evaluate_risks("u1")
    assert predictions and risk_insights
    assert service.list_predictions("u1") == []
    service.store_predictions("u1", predictions, risk_insights)
    assert len(service.list_predictions("u1")) == len(predictions)


def test_same_day_rerun_replaces_predictions(service):
    first = service.predict_risks("u1")
    service.clock = lambda: NOW + timedelta(hours=3)
    service.predict_risks("u1")
    assert len(service.list_predictions("u1")) == len(first)
    assert len(service.list_insights("u1")) == 2


def test_valid_only_predictions(service):
    service.predict_risks("u1")
    service.clock = lambda: NOW + timedelta(days=200)
    assert service.list_predictions("u1", valid_only=True) == []
    assert len(service.list_predictions("u1")) == 2


def test_cleanup_expired(service):
    service.analyze_symptoms("u1")
    service.predict_risks("u1")

    service.clock = lambda: NOW + timedelta(days=100)
    assert service.cleanup_expired() == {"deleted_insights": 3, "deleted_predictions": 0}
    assert service.list_insights("u1") == []

    service.clock = lambda: NOW + timedelta(days=200)
    assert service.cleanup_expired() == {"deleted_insights": 0, "deleted_predictions": 2}
    assert service.list_predictions("u1") == []
