"""Map raw symptom diary records onto canonical symptom identifiers."""
from __future__ import annotations

import logging
import warnings
from datetime import datetime
from typing import AbstractSet, Dict, Iterable, List, Optional

from dss.errors import UnknownSymptomWarning
from dss.schema import NormalizedSymptom, SymptomRecord, to_utc, canonical_symptom, utcnow

logger = logging.getLogger(__name__)


SYNONYMS: Dict[str, str] = {
    "feverish": "fever",
    "high temperature": "fever",
    "temperature": "fever",
    "pyrexia": "fever",
    "coughing": "cough",
    "dry cough": "cough",
    "running nose": "runny nose",
    "rhinorrhea": "runny nose",
    "blocked nose": "nasal congestion",
    "stuffy nose": "nasal congestion",
    "shortness of breath": "breathlessness",
    "short of breath": "breathlessness",
    "difficulty breathing": "breathlessness",
    "dyspnea": "breathlessness",
    "throwing up": "vomiting",
    "vomit": "vomiting",
    "tired": "fatigue",
    "tiredness": "fatigue",
    "exhaustion": "fatigue",
    "body pain": "body ache",
    "muscle pain": "body ache",
    "muscle ache": "body ache",
    "stomach ache": "abdominal pain",
    "stomach pain": "abdominal pain",
    "belly pain": "abdominal pain",
    "loose stools": "diarrhea",
    "diarrhoea": "diarrhea",
    "headaches": "headache",
    "dizzy": "dizziness",
    "lightheaded": "dizziness",
    "lightheadedness": "dizziness",
    "sweats": "sweating",
    "photophobia": "light sensitivity",
    "acid reflux": "heartburn",
    "burning urination": "painful urination",
    "nose bleed": "nosebleed",
}


def canonicalize(name: str) -> str:
    key = canonical_symptom(name)
    return SYNONYMS.get(key, key)


def normalize(
    records: Iterable[SymptomRecord],
    known_symptoms: AbstractSet[str],
    as_of: Optional[datetime] = None,
) -> List[NormalizedSymptom]:
    """
    Normalize active symptom records.

    Names missing from ``known_symptoms`` are kept and flagged ``unknown``.
    Records that are no longer active, or whose name is blank once cleaned,
    are skipped. Several records for the same canonical symptom collapse
    into one carrying the highest severity and the earliest start.
    """
    as_of = to_utc(as_of) if as_of is not None else utcnow()
    merged: Dict[str, NormalizedSymptom] = {}

    for record in records:
        if not record.is_active:
            logger.debug("Skipping ended symptom %s", record.symptom_id)
            continue
        name = canonicalize(record.canonical_name)
        if not name:
            logger.warning("Skipping symptom %s with a blank name", record.symptom_id)
            continue

        start = record.start_date
        active_days = max(0, (as_of - start).days)
        unknown = name not in known_symptoms

        current = merged.get(name)
        if current is None:
            if unknown:
                warnings.warn(
                    f"Symptom {name!r} is not in the disease catalog",
                    UnknownSymptomWarning,
                    stacklevel=2,
                )
            merged[name] = NormalizedSymptom(
                symptom_id=record.symptom_id,
                canonical_name=name,
                raw_name=record.canonical_name,
                severity=record.severity,
                start_date=start,
                active_days=active_days,
                unknown=unknown,
            )
            continue

        severity = max(current.severity, record.severity, key=lambda s: s.rank)
        if start < current.start_date:
            merged[name] = current.model_copy(
                update={"severity": severity, "start_date": start, "active_days": active_days}
            )
        else:
            merged[name] = current.model_copy(update={"severity": severity})

    result = [merged[name] for name in sorted(merged)]
    unknown_count = sum(1 for s in result if s.unknown)
    if unknown_count:
        logger.warning("%d of %d symptoms are not in the catalog", unknown_count, len(result))
    return result
