from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple
from uuid import NAMESPACE_URL, uuid4, uuid5
from zoneinfo import ZoneInfo

from dateutil.parser import parse
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

__all__ = [
    "Severity",
    "SymptomRecord",
    "NormalizedSymptom",
    "DiseaseDefinition",
    "MatchResult",
    "UrgencyLevel",
    "UrgencyResult",
    "AnalysisResponse",
    "MetricType",
    "HealthMetricRecord",
    "RiskType",
    "RiskLevel",
    "Prediction",
    "InsightCategory",
    "InsightSeverity",
    "Insight",
    "canonical_symptom",
    "to_utc",
    "parse_datetime",
    "stable_id",
    "utcnow",
]


class Severity(str, Enum):
    """Standardised severity levels for symptoms."""

    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"

    @classmethod
    def _missing_(cls, value: object) -> "Severity":
        if isinstance(value, int) and not isinstance(value, bool):
            # 1-10 scale used by the symptom diary
            if 1 <= value <= 3:
                return cls.MILD
            if 4 <= value <= 6:
                return cls.MODERATE
            if 7 <= value <= 10:
                return cls.SEVERE
            raise ValueError(f"Severity out of range: {value}")
        if not isinstance(value, str):
            raise ValueError(f"Unknown severity: {value}")
        val = value.strip().lower()
        synonyms = {
            "mild": "MILD",
            "slight": "MILD",
            "light": "MILD",
            "moderate": "MODERATE",
            "average": "MODERATE",
            "noticeable": "MODERATE",
            "severe": "SEVERE",
            "strong": "SEVERE",
            "intense": "SEVERE",
            "awful": "SEVERE",
            "terrible": "SEVERE",
        }
        if val in synonyms:
            return cls(synonyms[val])
        return super()._missing_(value)

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.MILD: 1, Severity.MODERATE: 2, Severity.SEVERE: 3}


_DEF_TZ = ZoneInfo("UTC")


def utcnow() -> datetime:
    return datetime.now(_DEF_TZ)


def to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware and converted to UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_DEF_TZ)
    return dt.astimezone(_DEF_TZ)


def parse_datetime(text: str, tz: str = "UTC") -> datetime:
    """Parse a timestamp with dateutil; naive values are read in ``tz``. Returns UTC."""
    dt = parse(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt.astimezone(_DEF_TZ)


def _coerce_datetime(v: datetime | str | None) -> datetime | None:
    if v is None:
        return v
    if isinstance(v, str):
        return parse_datetime(v)
    return to_utc(v)


def canonical_symptom(name: str) -> str:
    """Lowercase, unify separators and collapse whitespace."""
    cleaned = re.sub(r"[_\-]+", " ", name.strip().lower())
    return re.sub(r"\s+", " ", cleaned).strip()


def stable_id(*parts: object) -> str:
    """Deterministic identifier derived from ``parts``."""
    key = "|".join(str(p) for p in parts)
    return str(uuid5(NAMESPACE_URL, f"healthtrack-dss:{key}"))


# ---------- symptoms -------------------------------------------------


class SymptomRecord(BaseModel):
    """A patient's symptom as kept by the symptom diary."""

    symptom_id: str = Field(default_factory=lambda: str(uuid4()))
    canonical_name: str = Field(min_length=1)
    severity: Severity
    start_date: datetime
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date", mode="before")
    def _parse_datetimes(cls, v: datetime | str | None) -> datetime | None:
        return _coerce_datetime(v)

    @model_validator(mode="after")
    def _check_dates(self) -> "SymptomRecord":
        if self.end_date is not None and self.start_date > self.end_date:
            raise ValueError("start_date must be before or equal to end_date")
        return self

    @property
    def is_active(self) -> bool:
        return self.end_date is None


class NormalizedSymptom(BaseModel):
    model_config = ConfigDict(frozen=True)

    symptom_id: str
    canonical_name: str
    raw_name: str
    severity: Severity
    start_date: datetime
    active_days: int = Field(ge=0)
    unknown: bool = False


# ---------- knowledge base / matching --------------------------------


class DiseaseDefinition(BaseModel):
    """Catalog entry: characteristic symptoms and their weights."""

    model_config = ConfigDict(frozen=True)

    disease_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    symptom_weights: Mapping[str, float]
    critical_symptoms: FrozenSet[str] = frozenset()
    min_match_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    category: Optional[str] = None
    icd_code: Optional[str] = None
    recommendations: Tuple[str, ...] = ()

    @field_validator("symptom_weights")
    def _normalise_weights(cls, v: Mapping[str, float]) -> Mapping[str, float]:
        weights: Dict[str, float] = {}
        for name, weight in v.items():
            key = canonical_symptom(name)
            if not key:
                raise ValueError("symptom names must not be empty")
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"weight for {name!r} must be within [0, 1]")
            weights[key] = weights.get(key, 0.0) + weight
        total = sum(weights.values())
        if total <= 0:
            raise ValueError("symptom weights must sum to a positive value")
        return MappingProxyType({key: weight / total for key, weight in sorted(weights.items())})

    @field_serializer("symptom_weights")
    def _dump_weights(self, v: Mapping[str, float]) -> Dict[str, float]:
        return dict(v)

    @field_validator("critical_symptoms", mode="before")
    def _canonical_critical(cls, v):
        return frozenset(canonical_symptom(name) for name in (v or ()))

    @model_validator(mode="after")
    def _critical_are_weighted(self) -> "DiseaseDefinition":
        missing = self.critical_symptoms - set(self.symptom_weights)
        if missing:
            raise ValueError(
                f"critical symptoms without a weight: {', '.join(sorted(missing))}"
            )
        return self


class MatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    disease_id: str
    name: str
    match_score: float = Field(ge=0.0, le=1.0)
    matched_symptoms: List[str]
    critical_symptoms_present: List[str]
    recommendations: List[str] = Field(default_factory=list)


class UrgencyLevel(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"


class UrgencyResult(BaseModel):
    urgency_score: int = Field(ge=0, le=100)
    urgency_level: UrgencyLevel
    recommendations: List[str]
    critical_symptoms: List[str]


class AnalysisResponse(BaseModel):
    """What the dashboard receives after a symptom analysis."""

    possible_diseases: List[MatchResult] = Field(default_factory=list)
    urgency_score: int = Field(default=0, ge=0, le=100)
    urgency_level: UrgencyLevel = UrgencyLevel.NONE
    recommendations: List[str] = Field(default_factory=list)
    critical_symptoms: List[str] = Field(default_factory=list)
    unknown_symptoms: List[str] = Field(default_factory=list)
    analysis_note: str = ""

    @classmethod
    def empty(cls) -> "AnalysisResponse":
        return cls(analysis_note="No active symptoms are being tracked.")


# ---------- metrics / predictions ------------------------------------


class MetricType(str, Enum):
    WEIGHT = "WEIGHT"
    BLOOD_PRESSURE = "BLOOD_PRESSURE"
    BLOOD_SUGAR = "BLOOD_SUGAR"
    HEART_RATE = "HEART_RATE"
    BODY_TEMPERATURE = "BODY_TEMPERATURE"
    CHOLESTEROL = "CHOLESTEROL"
    OXYGEN_SATURATION = "OXYGEN_SATURATION"
    BMI = "BMI"


class HealthMetricRecord(BaseModel):
    """One measurement; blood pressure carries systolic/diastolic instead of value."""

    metric_id: str = Field(default_factory=lambda: str(uuid4()))
    metric_type: MetricType
    value: Optional[float] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    unit: Optional[str] = None
    measured_at: datetime

    @field_validator("measured_at", mode="before")
    def _parse_measured_at(cls, v: datetime | str) -> datetime | None:
        return _coerce_datetime(v)


class RiskType(str, Enum):
    CARDIOVASCULAR = "CARDIOVASCULAR"
    DIABETES = "DIABETES"
    HYPERTENSION = "HYPERTENSION"
    OBESITY = "OBESITY"
    WEIGHT_TREND = "WEIGHT_TREND"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MODERATE: 1, RiskLevel.HIGH: 2}


class Prediction(BaseModel):
    prediction_id: str
    type: RiskType
    risk_level: RiskLevel
    risk_score: Optional[float] = None
    confidence: float = Field(ge=0.0, le=100.0)
    basis: Dict[str, Any] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
    computed_at: datetime
    valid_until: Optional[datetime] = None

    @field_validator("computed_at", "valid_until", mode="before")
    def _parse_datetimes(cls, v: datetime | str | None) -> datetime | None:
        return _coerce_datetime(v)


# ---------- insights -------------------------------------------------


class InsightCategory(str, Enum):
    SYMPTOM_ANALYSIS = "SYMPTOM_ANALYSIS"
    RISK_PREDICTION = "RISK_PREDICTION"


class InsightSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Insight(BaseModel):
    insight_id: str
    category: InsightCategory
    title: str
    message: str
    severity: InsightSeverity
    read: bool = False
    created_at: datetime
    expires_at: Optional[datetime] = None
    source_id: Optional[str] = None

    @field_validator("created_at", "expires_at", mode="before")
    def _parse_datetimes(cls, v: datetime | str | None) -> datetime | None:
        return _coerce_datetime(v)
