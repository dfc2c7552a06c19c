"""
Decision support pipeline wired to its data collaborators.

The analysis steps themselves are pure functions; this module reads the
patient's records through the repositories, runs the steps and hands the
results back for persistence.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from dss.config import Settings
from dss.errors import NotFoundError
from dss.insights import generate
from dss.knowledge_base import KnowledgeBase
from dss.matching import match
from dss.normalizer import normalize
from dss.risk import predict, validate_window
from dss.schema import AnalysisResponse, Insight, Prediction, RiskType, utcnow
from dss.urgency import score

logger = logging.getLogger(__name__)


class DecisionSupportService:
    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        symptoms,
        metrics,
        insights,
        predictions,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.knowledge_base = knowledge_base
        self.symptoms = symptoms
        self.metrics = metrics
        self.insights = insights
        self.predictions = predictions
        self.settings = settings or Settings()
        self.clock = clock

    # ---------- analysis ---------------------------------------------
    # evaluate_* only read, store_* only write.

    def evaluate_symptoms(self, user_id: str) -> Tuple[AnalysisResponse, List[Insight]]:
        """Analyze the user's active symptoms without writing anything."""
        logger.info("Analyzing symptoms for user: %s", user_id)
        records = self.symptoms.get_active_symptoms(user_id)
        if not records:
            logger.info("No active symptoms found for user: %s", user_id)
            return AnalysisResponse.empty(), []

        now = self.clock()
        normalized = normalize(records, self.knowledge_base.known_symptoms(), as_of=now)
        matches = match(normalized, self.knowledge_base.lookup_diseases())
        matches = matches[: self.settings.max_conditions]
        urgency = score(matches, normalized)
        logger.info("Urgency score for user %s: %d", user_id, urgency.urgency_score)

        insights = generate(matches, urgency, [], created_at=now, scope=user_id)
        unknown = [s.canonical_name for s in normalized if s.unknown]
        response = AnalysisResponse(
            possible_diseases=matches,
            urgency_score=urgency.urgency_score,
            urgency_level=urgency.urgency_level,
            recommendations=urgency.recommendations,
            critical_symptoms=urgency.critical_symptoms,
            unknown_symptoms=unknown,
            analysis_note=(
                f"Analyzed {len(normalized)} symptoms against {len(self.knowledge_base)} "
                f"conditions: {len(matches)} possible, urgency "
                f"{urgency.urgency_level.value} ({urgency.urgency_score}/100)."
            ),
        )
        return response, insights

    def store_insights(self, user_id: str, insights: Sequence[Insight]) -> int:
        """Persist new insights in one transaction; returns how many were new."""
        if not insights:
            return 0
        return self.insights.save_all(user_id, insights)

    def analyze_symptoms(self, user_id: str) -> AnalysisResponse:
        """Analyze the user's active symptoms and store any resulting insight."""
        response, insights = self.evaluate_symptoms(user_id)
        self.store_insights(user_id, insights)
        return response

    def evaluate_risks(
        self, user_id: str, window_days: Optional[int] = None
    ) -> Tuple[List[Prediction], List[Insight]]:
        """Predict chronic risks from recent metrics without writing anything."""
        window = validate_window(
            self.settings.risk_window_days if window_days is None else window_days
        )
        logger.info("Predicting health risks for user: %s (window %s days)", user_id, window)
        now = self.clock()
        history = self.metrics.get_history(user_id, None, window)
        predictions = predict(history, window, as_of=now, scope=user_id)
        return predictions, generate([], None, predictions, created_at=now, scope=user_id)

    def store_predictions(
        self, user_id: str, predictions: Sequence[Prediction], insights: Sequence[Insight]
    ) -> None:
        self.predictions.save_all(user_id, predictions)
        self.store_insights(user_id, insights)

    def predict_risks(self, user_id: str, window_days: Optional[int] = None) -> List[Prediction]:
        """Predict chronic risks from recent metrics and store the results."""
        predictions, insights = self.evaluate_risks(user_id, window_days)
        self.store_predictions(user_id, predictions, insights)
        return predictions

    # ---------- stored results ---------------------------------------

    def list_insights(
        self, user_id: str, unread_only: bool = False, since: Optional[datetime] = None
    ) -> List[Insight]:
        return self.insights.list(user_id, unread_only=unread_only, since=since)

    def unread_insight_count(self, user_id: str) -> int:
        return len(self.insights.list(user_id, unread_only=True))

    def mark_insight_read(self, user_id: str, insight_id: str) -> Insight:
        insight = self.insights.mark_read(user_id, insight_id)
        if insight is None:
            logger.warning("Insight %s not found for user %s", insight_id, user_id)
            raise NotFoundError(f"Insight not found: {insight_id}")
        return insight

    def delete_insight(self, user_id: str, insight_id: str) -> None:
        if not self.insights.delete(user_id, insight_id):
            logger.warning("Insight %s not found for user %s", insight_id, user_id)
            raise NotFoundError(f"Insight not found: {insight_id}")

    def list_predictions(
        self, user_id: str, risk_type: Optional[RiskType] = None, valid_only: bool = False
    ) -> List[Prediction]:
        valid_at = self.clock() if valid_only else None
        return self.predictions.list(user_id, risk_type=risk_type, valid_at=valid_at)

    def delete_prediction(self, user_id: str, prediction_id: str) -> None:
        if not self.predictions.delete(user_id, prediction_id):
            logger.warning("Prediction %s not found for user %s", prediction_id, user_id)
            raise NotFoundError(f"Prediction not found: {prediction_id}")

    def cleanup_expired(self) -> Dict[str, int]:
        """Delete expired insights and predictions of every user."""
        now = self.clock()
        deleted = {
            "deleted_insights": self.insights.delete_expired(now),
            "deleted_predictions": self.predictions.delete_expired(now),
        }
        logger.info(
            "Cleanup removed %d insights and %d predictions",
            deleted["deleted_insights"],
            deleted["deleted_predictions"],
        )
        return deleted

    def dashboard(self, user_id: str, limit: int = 5) -> dict:
        """Recent unexpired insights, still-valid predictions and the unread count."""
        now = self.clock()
        insights = [
            i for i in self.insights.list(user_id)
            if i.expires_at is None or i.expires_at > now
        ]
        predictions = self.predictions.list(user_id, valid_at=now)
        return {
            "recent_insights": insights[:limit],
            "active_predictions": predictions,
            "unread_insights_count": sum(1 for i in insights if not i.read),
            "last_updated": now,
        }
