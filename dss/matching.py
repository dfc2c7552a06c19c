"""Score candidate diseases against a patient's normalized symptoms."""
from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from dss.schema import DiseaseDefinition, MatchResult, NormalizedSymptom

logger = logging.getLogger(__name__)


def match_score(symptoms: set[str], disease: DiseaseDefinition) -> float:
    """Share of the disease's symptom weight covered by ``symptoms``, in [0, 1]."""
    total = sum(disease.symptom_weights.values())
    if total <= 0:
        return 0.0
    matched = sum(w for name, w in disease.symptom_weights.items() if name in symptoms)
    return min(1.0, max(0.0, matched / total))


def match(
    symptoms: Sequence[NormalizedSymptom],
    diseases: Iterable[DiseaseDefinition],
) -> List[MatchResult]:
    """
    Rank diseases by how well the patient's symptoms fit them.

    Unknown symptoms never contribute. A disease is reported only when at
    least one of its symptoms is present and its score reaches the disease's
    ``min_match_threshold``. Results are ordered by score (descending), then
    by number of critical symptoms present (descending), then by name.
    """
    present = {s.canonical_name for s in symptoms if not s.unknown}
    if not present:
        return []

    results: List[MatchResult] = []
    for disease in diseases:
        matched = present.intersection(disease.symptom_weights)
        if not matched:
            continue
        score = match_score(present, disease)
        if score < disease.min_match_threshold:
            continue
        results.append(
            MatchResult(
                disease_id=disease.disease_id,
                name=disease.name,
                match_score=score,
                matched_symptoms=sorted(matched),
                critical_symptoms_present=sorted(present & disease.critical_symptoms),
                recommendations=list(disease.recommendations),
            )
        )

    results.sort(
        key=lambda r: (-r.match_score, -len(r.critical_symptoms_present), r.name)
    )
    logger.info("Matched %d diseases from %d known symptoms", len(results), len(present))
    return results
