"""
SQLAlchemy tables mirroring the pydantic records in :mod:`dss.schema`.

Column names match the pydantic field names so rows convert with
``model_validate(row, from_attributes=True)``.
"""
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    String,
    Text,
)
from sqlalchemy.dialects.sqlite import JSON

from db.engine import Base
from dss.schema import (
    InsightCategory,
    InsightSeverity,
    MetricType,
    RiskLevel,
    RiskType,
    Severity,
)


class SymptomORM(Base):
    __tablename__ = "symptoms"

    symptom_id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    canonical_name = Column(String, nullable=False)
    severity = Column(Enum(Severity), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), index=True)
    notes = Column(Text)


class HealthMetricORM(Base):
    __tablename__ = "health_metrics"

    metric_id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    metric_type = Column(Enum(MetricType), nullable=False)
    value = Column(Float)
    systolic = Column(Float)
    diastolic = Column(Float)
    unit = Column(String)
    measured_at = Column(DateTime(timezone=True), nullable=False, index=True)


class PredictionORM(Base):
    __tablename__ = "health_predictions"

    prediction_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    type = Column(Enum(RiskType), nullable=False)
    risk_level = Column(Enum(RiskLevel), nullable=False)
    risk_score = Column(Float)
    confidence = Column(Float, nullable=False)
    basis = Column(JSON)
    recommendations = Column(JSON)
    computed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    valid_until = Column(DateTime(timezone=True))


class InsightORM(Base):
    __tablename__ = "health_insights"

    insight_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    category = Column(Enum(InsightCategory), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(Enum(InsightSeverity), nullable=False)
    read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True))
    source_id = Column(String)
