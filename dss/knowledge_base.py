"""
Disease catalog used by the matching engine.

Each disease lists its characteristic symptoms with a weight. Weights are
rescaled to sum to 1.0 on load so match scores are comparable across
diseases.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError as SchemaValidationError

from dss.errors import KnowledgeBaseError
from dss.schema import DiseaseDefinition

logger = logging.getLogger(__name__)


DEFAULT_CATALOG: list[dict] = [
    {
        "disease_id": "allergic-rhinitis",
        "name": "Allergic Rhinitis",
        "icd_code": "J30.9",
        "category": "RESPIRATORY",
        "symptom_weights": {
            "sneezing": 0.3,
            "runny nose": 0.3,
            "itchy eyes": 0.25,
            "nasal congestion": 0.15,
        },
        "min_match_threshold": 0.35,
        "recommendations": [
            "Avoid known allergens and keep windows closed during high pollen days.",
            "Over-the-counter antihistamines may relieve symptoms.",
        ],
    },
    {
        "disease_id": "asthma",
        "name": "Asthma",
        "icd_code": "J45.909",
        "category": "RESPIRATORY",
        "symptom_weights": {
            "wheezing": 0.35,
            "breathlessness": 0.3,
            "cough": 0.2,
            "chest tightness": 0.15,
        },
        "critical_symptoms": ["breathlessness"],
        "min_match_threshold": 0.35,
        "recommendations": [
            "Keep a rescue inhaler at hand if one has been prescribed.",
            "Ask a doctor about a lung function test.",
        ],
    },
    {
        "disease_id": "common-cold",
        "name": "Common Cold",
        "icd_code": "J00",
        "category": "RESPIRATORY",
        "symptom_weights": {
            "runny nose": 0.3,
            "sneezing": 0.25,
            "sore throat": 0.2,
            "cough": 0.15,
            "headache": 0.1,
        },
        "min_match_threshold": 0.3,
        "recommendations": [
            "Rest and drink plenty of fluids.",
            "Symptoms usually clear within 7-10 days.",
        ],
    },
    {
        "disease_id": "covid-19",
        "name": "COVID-19",
        "icd_code": "U07.1",
        "category": "RESPIRATORY",
        "symptom_weights": {
            "fever": 0.25,
            "cough": 0.2,
            "loss of taste": 0.2,
            "fatigue": 0.15,
            "breathlessness": 0.2,
        },
        "critical_symptoms": ["breathlessness"],
        "min_match_threshold": 0.35,
        "recommendations": [
            "Take a rapid antigen test and limit contact with others.",
            "Seek care if breathing becomes difficult.",
        ],
    },
    {
        "disease_id": "dengue",
        "name": "Dengue Fever",
        "icd_code": "A90",
        "category": "INFECTIOUS",
        "symptom_weights": {
            "fever": 0.3,
            "joint pain": 0.2,
            "headache": 0.15,
            "rash": 0.15,
            "eye pain": 0.1,
            "bleeding gums": 0.1,
        },
        "critical_symptoms": ["bleeding gums"],
        "min_match_threshold": 0.4,
        "recommendations": [
            "Stay hydrated and avoid aspirin or ibuprofen.",
            "A blood test can confirm dengue.",
        ],
    },
    {
        "disease_id": "gastroenteritis",
        "name": "Gastroenteritis",
        "icd_code": "A09",
        "category": "DIGESTIVE",
        "symptom_weights": {
            "diarrhea": 0.3,
            "vomiting": 0.25,
            "nausea": 0.2,
            "abdominal pain": 0.15,
            "fever": 0.1,
        },
        "min_match_threshold": 0.3,
        "recommendations": [
            "Use oral rehydration solution to replace lost fluids.",
            "Eat bland food until symptoms settle.",
        ],
    },
    {
        "disease_id": "gerd",
        "name": "Gastroesophageal Reflux",
        "icd_code": "K21.9",
        "category": "DIGESTIVE",
        "symptom_weights": {
            "heartburn": 0.45,
            "regurgitation": 0.2,
            "chest pain": 0.15,
            "sore throat": 0.1,
            "cough": 0.1,
        },
        "min_match_threshold": 0.35,
        "recommendations": [
            "Avoid large meals and lying down right after eating.",
            "Cut down on coffee, alcohol and spicy food.",
        ],
    },
    {
        "disease_id": "hypertension",
        "name": "Hypertension",
        "icd_code": "I10",
        "category": "CARDIOVASCULAR",
        "symptom_weights": {
            "headache": 0.25,
            "dizziness": 0.25,
            "chest pain": 0.2,
            "blurred vision": 0.15,
            "nosebleed": 0.15,
        },
        "critical_symptoms": ["chest pain"],
        "min_match_threshold": 0.35,
        "recommendations": [
            "Measure your blood pressure daily and keep a log.",
            "Reduce salt intake to less than 5 g per day.",
        ],
    },
    {
        "disease_id": "influenza",
        "name": "Influenza",
        "icd_code": "J11.1",
        "category": "RESPIRATORY",
        "symptom_weights": {
            "fever": 0.3,
            "cough": 0.2,
            "body ache": 0.2,
            "fatigue": 0.15,
            "headache": 0.1,
            "chills": 0.05,
        },
        "critical_symptoms": ["fever"],
        "min_match_threshold": 0.3,
        "recommendations": [
            "Rest, stay hydrated and use fever reducers as needed.",
            "Antivirals work best within 48 hours of onset.",
        ],
    },
    {
        "disease_id": "migraine",
        "name": "Migraine",
        "icd_code": "G43.909",
        "category": "NEUROLOGICAL",
        "symptom_weights": {
            "headache": 0.4,
            "light sensitivity": 0.25,
            "nausea": 0.2,
            "dizziness": 0.15,
        },
        "min_match_threshold": 0.4,
        "recommendations": [
            "Rest in a dark, quiet room during an attack.",
            "Keep a diary of possible triggers.",
        ],
    },
    {
        "disease_id": "myocardial-infarction",
        "name": "Heart Attack",
        "icd_code": "I21.9",
        "category": "CARDIOVASCULAR",
        "symptom_weights": {
            "chest pain": 0.4,
            "breathlessness": 0.2,
            "sweating": 0.15,
            "arm pain": 0.15,
            "nausea": 0.1,
        },
        "critical_symptoms": ["chest pain", "arm pain"],
        "min_match_threshold": 0.4,
        "recommendations": [
            "Call emergency services immediately.",
            "Chew an aspirin if you are not allergic to it.",
        ],
    },
    {
        "disease_id": "pneumonia",
        "name": "Pneumonia",
        "icd_code": "J18.9",
        "category": "RESPIRATORY",
        "symptom_weights": {
            "cough": 0.25,
            "breathlessness": 0.25,
            "fever": 0.2,
            "chest pain": 0.2,
            "fatigue": 0.1,
        },
        "critical_symptoms": ["breathlessness", "chest pain"],
        "min_match_threshold": 0.4,
        "recommendations": [
            "A chest X-ray may be needed to confirm the diagnosis.",
            "Seek care promptly if you are over 65 or short of breath.",
        ],
    },
    {
        "disease_id": "urinary-tract-infection",
        "name": "Urinary Tract Infection",
        "icd_code": "N39.0",
        "category": "UROLOGICAL",
        "symptom_weights": {
            "painful urination": 0.4,
            "frequent urination": 0.3,
            "lower abdominal pain": 0.2,
            "fever": 0.1,
        },
        "min_match_threshold": 0.35,
        "recommendations": [
            "Drink plenty of water.",
            "A urine test and antibiotics are usually needed.",
        ],
    },
]


class KnowledgeBase:
    """Immutable, ordered catalog of disease definitions."""

    def __init__(self, diseases: Iterable[DiseaseDefinition]):
        ordered = sorted(diseases, key=lambda d: d.disease_id)
        seen: set[str] = set()
        for disease in ordered:
            if disease.disease_id in seen:
                raise KnowledgeBaseError(f"Duplicate disease id: {disease.disease_id}")
            seen.add(disease.disease_id)
        if not ordered:
            raise KnowledgeBaseError("Disease catalog is empty")
        self._diseases = tuple(ordered)
        self._by_id = {d.disease_id: d for d in self._diseases}
        self._known = frozenset(
            symptom for d in self._diseases for symptom in d.symptom_weights
        )

    def __len__(self) -> int:
        return len(self._diseases)

    def lookup_diseases(self) -> tuple[DiseaseDefinition, ...]:
        """Return the full catalog ordered by ``disease_id``."""
        return self._diseases

    def known_symptoms(self) -> frozenset[str]:
        return self._known

    def get(self, disease_id: str) -> Optional[DiseaseDefinition]:
        return self._by_id.get(disease_id)

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "KnowledgeBase":
        try:
            diseases = [DiseaseDefinition.model_validate(r) for r in records]
        except SchemaValidationError as exc:
            raise KnowledgeBaseError(f"Invalid disease definition: {exc}") from exc
        return cls(diseases)

    @classmethod
    def default(cls) -> "KnowledgeBase":
        return cls.from_records(DEFAULT_CATALOG)

    @classmethod
    def from_file(cls, path: Path) -> "KnowledgeBase":
        """Load a catalog from a JSON array of disease definitions."""
        try:
            records = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise KnowledgeBaseError(f"Cannot read disease catalog {path}: {exc}") from exc
        if not isinstance(records, list):
            raise KnowledgeBaseError(f"Disease catalog {path} must be a JSON array")
        return cls.from_records(records)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "KnowledgeBase":
        kb = cls.from_file(path) if path else cls.default()
        logger.info(
            "Loaded %d diseases covering %d symptoms from %s",
            len(kb),
            len(kb.known_symptoms()),
            path or "bundled catalog",
        )
        return kb
