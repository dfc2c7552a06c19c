from .engine import Base, get_engine, init_db  # noqa: F401
from .repository import (  # noqa: F401
    HealthMetricRepository,
    InsightRepository,
    PredictionRepository,
    SymptomRepository,
    session_scope,
)

__all__ = [
    "Base",
    "get_engine",
    "init_db",
    "session_scope",
    "SymptomRepository",
    "HealthMetricRepository",
    "InsightRepository",
    "PredictionRepository",
]
