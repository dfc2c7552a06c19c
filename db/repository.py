"""
Thin CRUD wrappers around SQLAlchemy sessions.

These are the data collaborators of :class:`dss.service.DecisionSupportService`.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import sessionmaker

from db.engine import database_path, get_engine, init_db
from db.models import HealthMetricORM, InsightORM, PredictionORM, SymptomORM
from dss.schema import (
    HealthMetricRecord,
    Insight,
    MetricType,
    Prediction,
    RiskType,
    SymptomRecord,
    to_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

_sessions: Dict[Path, sessionmaker] = {}


def _session_factory() -> sessionmaker:
    path = database_path()
    factory = _sessions.get(path)
    if factory is None:
        engine = init_db(get_engine(path))
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        _sessions[path] = factory
        logger.info("Opened database %s", path)
    return factory


@contextmanager
def session_scope():
    """
    Provide a transactional database session bound to the current database.

    The database follows ``DSS_DB_PATH`` (or the working directory) at call
    time. The context commits on successful exit, rolls back and re-raises
    on exception, and always closes the session.
    """
    db = _session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ---------- symptoms & metrics (read by the DSS) ---------------------


class SymptomRepository:
    def add(self, user_id: str, record: SymptomRecord) -> SymptomRecord:
        with session_scope() as db:
            db.add(SymptomORM(user_id=user_id, **record.model_dump()))
        return record

    def get_active_symptoms(self, user_id: str) -> List[SymptomRecord]:
        """Symptoms of ``user_id`` that have no end date."""
        with session_scope() as db:
            rows: Iterable[SymptomORM] = (
                db.query(SymptomORM)
                .filter(SymptomORM.user_id == user_id, SymptomORM.end_date.is_(None))
                .order_by(SymptomORM.start_date)
                .all()
            )
            return [SymptomRecord.model_validate(row, from_attributes=True) for row in rows]


class HealthMetricRepository:
    def add(self, user_id: str, record: HealthMetricRecord) -> HealthMetricRecord:
        with session_scope() as db:
            db.add(HealthMetricORM(user_id=user_id, **record.model_dump()))
        return record

    def get_history(
        self,
        user_id: str,
        metric_type: Optional[MetricType] = None,
        window_days: Optional[int] = None,
    ) -> List[HealthMetricRecord]:
        """
        Readings for ``user_id`` in measurement order.

        Args:
            metric_type: If provided, only readings of that type.
            window_days: If provided, only readings from the trailing window.
        """
        with session_scope() as db:
            q = db.query(HealthMetricORM).filter(HealthMetricORM.user_id == user_id)
            if metric_type is not None:
                q = q.filter(HealthMetricORM.metric_type == metric_type)
            if window_days is not None:
                q = q.filter(HealthMetricORM.measured_at >= utcnow() - timedelta(days=window_days))
            rows = q.order_by(HealthMetricORM.measured_at).all()
            return [HealthMetricRecord.model_validate(row, from_attributes=True) for row in rows]


# ---------- DSS output -----------------------------------------------


class InsightRepository:
    def save(self, user_id: str, insight: Insight) -> bool:
        """Store ``insight`` unless one with the same id already exists."""
        return self.save_all(user_id, [insight]) == 1

    def save_all(self, user_id: str, insights: Iterable[Insight]) -> int:
        """Store the insights not stored yet, in one transaction. Returns how many were new."""
        added = 0
        with session_scope() as db:
            for insight in insights:
                if db.get(InsightORM, insight.insight_id) is not None:
                    logger.debug("Insight %s already stored", insight.insight_id)
                    continue
                db.add(InsightORM(user_id=user_id, **insight.model_dump()))
                db.flush()
                added += 1
        return added

    def list(
        self,
        user_id: str,
        unread_only: bool = False,
        since: Optional[datetime] = None,
    ) -> List[Insight]:
        with session_scope() as db:
            q = db.query(InsightORM).filter(InsightORM.user_id == user_id)
            if unread_only:
                q = q.filter(InsightORM.read.is_(False))
            if since is not None:
                q = q.filter(InsightORM.created_at >= to_utc(since))
            rows = q.order_by(InsightORM.created_at.desc(), InsightORM.insight_id).all()
            return [Insight.model_validate(row, from_attributes=True) for row in rows]

    def mark_read(self, user_id: str, insight_id: str) -> Insight | None:
        with session_scope() as db:
            row = db.get(InsightORM, insight_id)
            if row is None or row.user_id != user_id:
                return None
            row.read = True
            db.flush()
            return Insight.model_validate(row, from_attributes=True)

    def delete(self, user_id: str, insight_id: str) -> bool:
        with session_scope() as db:
            row = db.get(InsightORM, insight_id)
            if row is None or row.user_id != user_id:
                return False
            db.delete(row)
        return True

    def delete_expired(self, now: datetime) -> int:
        """Delete insights of all users that expired before ``now``."""
        with session_scope() as db:
            return (
                db.query(InsightORM)
                .filter(InsightORM.expires_at.is_not(None), InsightORM.expires_at < to_utc(now))
                .delete(synchronize_session=False)
            )


class PredictionRepository:
    def save_all(self, user_id: str, predictions: Iterable[Prediction]) -> None:
        with session_scope() as db:
            for prediction in predictions:
                db.merge(PredictionORM(user_id=user_id, **prediction.model_dump()))

    def list(
        self,
        user_id: str,
        risk_type: Optional[RiskType] = None,
        valid_at: Optional[datetime] = None,
    ) -> List[Prediction]:
        """
        Stored predictions of ``user_id``, newest first.

        Args:
            risk_type: If provided, only predictions of that type.
            valid_at: If provided, only predictions still valid at that time.
        """
        with session_scope() as db:
            q = db.query(PredictionORM).filter(PredictionORM.user_id == user_id)
            if risk_type is not None:
                q = q.filter(PredictionORM.type == risk_type)
            if valid_at is not None:
                q = q.filter(
                    or_(PredictionORM.valid_until.is_(None), PredictionORM.valid_until > to_utc(valid_at))
                )
            rows = q.order_by(PredictionORM.computed_at.desc(), PredictionORM.type).all()
            return [Prediction.model_validate(row, from_attributes=True) for row in rows]

    def delete(self, user_id: str, prediction_id: str) -> bool:
        with session_scope() as db:
            row = db.get(PredictionORM, prediction_id)
            if row is None or row.user_id != user_id:
                return False
            db.delete(row)
        return True

    def delete_expired(self, now: datetime) -> int:
        """Delete predictions of all users whose validity ended before ``now``."""
        with session_scope() as db:
            return (
                db.query(PredictionORM)
                .filter(PredictionORM.valid_until.is_not(None), PredictionORM.valid_until < to_utc(now))
                .delete(synchronize_session=False)
            )
