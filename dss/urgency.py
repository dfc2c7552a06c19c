"""
Urgency scoring.

The score is additive so every point can be traced back to a rule:

- base: best match score x 60
- +15 per distinct critical symptom present, at most +30
- +10 if any symptom is SEVERE, otherwise +5 if any is MODERATE
- +10 if any symptom has been active for 7 days or more

The total is rounded and clamped to [0, 100].
"""
from __future__ import annotations

from typing import Dict, List, Sequence

from dss.schema import (
    MatchResult,
    NormalizedSymptom,
    Severity,
    UrgencyLevel,
    UrgencyResult,
)

BASE_WEIGHT = 60
CRITICAL_BONUS = 15
CRITICAL_BONUS_CAP = 30
SEVERITY_BONUS = {Severity.SEVERE: 10, Severity.MODERATE: 5, Severity.MILD: 0}
DURATION_BONUS = 10
PERSISTENT_DAYS = 7
DISEASE_NOTE_MIN_SCORE = 0.5

BAND_RECOMMENDATIONS: Dict[UrgencyLevel, List[str]] = {
    UrgencyLevel.LOW: [
        "Self-care: monitor your symptoms over the next few days.",
        "Rest, stay hydrated and note any changes.",
        "See a doctor if there is no improvement within 3-5 days.",
    ],
    UrgencyLevel.MODERATE: [
        "Schedule a consultation with a doctor within 1-2 weeks.",
        "Track your symptoms daily.",
        "See a doctor sooner if your symptoms get worse.",
    ],
    UrgencyLevel.HIGH: [
        "Seek urgent care: your symptoms need prompt medical assessment.",
        "Book a doctor visit within the next 24-48 hours.",
        "Go to the emergency department if symptoms become severe.",
    ],
}


def urgency_level(urgency_score: int) -> UrgencyLevel:
    if urgency_score >= 70:
        return UrgencyLevel.HIGH
    if urgency_score >= 30:
        return UrgencyLevel.MODERATE
    return UrgencyLevel.LOW


def score(
    match_results: Sequence[MatchResult],
    symptoms: Sequence[NormalizedSymptom],
) -> UrgencyResult:
    base = max((m.match_score for m in match_results), default=0.0) * BASE_WEIGHT

    critical = sorted({c for m in match_results for c in m.critical_symptoms_present})
    critical_bonus = min(CRITICAL_BONUS * len(critical), CRITICAL_BONUS_CAP)

    severity_bonus = max((SEVERITY_BONUS[s.severity] for s in symptoms), default=0)

    persistent = any(s.active_days >= PERSISTENT_DAYS for s in symptoms)
    duration_bonus = DURATION_BONUS if persistent else 0

    total = round(base + critical_bonus + severity_bonus + duration_bonus)
    urgency_score = int(min(100, max(0, total)))
    level = urgency_level(urgency_score)

    recommendations = list(BAND_RECOMMENDATIONS[level])
    for m in match_results:
        if m.match_score >= DISEASE_NOTE_MIN_SCORE:
            recommendations.extend(f"{m.name}: {note}" for note in m.recommendations)

    return UrgencyResult(
        urgency_score=urgency_score,
        urgency_level=level,
        recommendations=list(dict.fromkeys(recommendations)),
        critical_symptoms=critical,
    )
