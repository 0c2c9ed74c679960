"""
urgency classifier

Labels a brand new blood request as CRITICAL / HIGH / MEDIUM / LOW using only
what the hospital tells us about the patient at intake time:
- patient condition
- department / ward
- patient age
- how many units are needed

There is no history to lean on here (cold start), so this is a plain additive
point model. Four independent axes, each with its own cap, summed up and cut
into four bands.

This never raises. Unknown conditions or departments fall back to the default
branch, because a scoring hiccup must never stop a hospital from filing a request.
"""

from __future__ import annotations

from app.schemas.blood import (
    Department,
    PatientCondition,
    Urgency,
    UrgencyCalculation,
    UrgencyDescription,
    UrgencyInput,
    UrgencyResult,
)


# -------------------------
# Scoring tables
# -------------------------

# 0-100
CONDITION_SCORES: dict[PatientCondition, int] = {
    PatientCondition.critical: 100,
    PatientCondition.severe: 75,
    PatientCondition.moderate: 50,
    PatientCondition.stable: 25,
}
DEFAULT_CONDITION_SCORE = 25
CONDITION_NOTE_THRESHOLD = 75

# 0-80
DEPARTMENT_SCORES: dict[Department, int] = {
    Department.icu: 80,
    Department.trauma: 80,
    Department.emergency: 75,
    Department.operation_theatre: 70,
    Department.cardiology: 60,
    Department.general_ward: 30,
    Department.other: 40,
}
DEFAULT_DEPARTMENT_SCORE = 30
DEPARTMENT_NOTE_THRESHOLD = 70

# (minimum total score, urgency, priority rank), checked top down
URGENCY_BANDS: tuple[tuple[int, Urgency, int], ...] = (
    (240, Urgency.critical, 1),
    (180, Urgency.high, 2),
    (100, Urgency.medium, 3),
)

URGENCY_DESCRIPTIONS: dict[Urgency, UrgencyDescription] = {
    Urgency.critical: UrgencyDescription(
        label="CRITICAL 🔴",
        description="Immediate intervention required",
        color="red",
    ),
    Urgency.high: UrgencyDescription(
        label="HIGH 🟠",
        description="Urgent - respond within 15 minutes",
        color="orange",
    ),
    Urgency.medium: UrgencyDescription(
        label="MEDIUM 🟡",
        description="Standard - respond within 1 hour",
        color="yellow",
    ),
    Urgency.low: UrgencyDescription(
        label="LOW 🟢",
        description="Routine - respond within 4 hours",
        color="green",
    ),
}


def _age_score(age: int) -> tuple[int, str | None]:
    """
    Very young and elderly patients carry the most risk.

    Order matters: a 4 year old only gets the <5 bonus, not the pediatric one too.
    """
    if age < 5:
        return 40, "Very young patient (<5 years)"
    if age > 70:
        return 35, "Elderly patient (>70 years)"
    if age < 18:
        return 30, "Pediatric patient"
    if age > 60:
        return 20, None
    return 10, None


def _quantity_score(units: int) -> tuple[int, str | None]:
    if units >= 8:
        return 30, f"Large quantity required ({units} units)"
    if units >= 5:
        return 20, None
    if units >= 3:
        return 10, None
    return 5, None


def calculate_urgency(data: UrgencyInput) -> UrgencyResult:
    """
    Runs the four-axis point model and buckets the total.

    Total ranges from 0 to 290. Bands:
    - >= 240 CRITICAL (rank 1)
    - >= 180 HIGH (rank 2)
    - >= 100 MEDIUM (rank 3)
    - otherwise LOW (rank 4)
    """
    factors: list[str] = []

    condition_score = CONDITION_SCORES.get(data.patient_condition, DEFAULT_CONDITION_SCORE)
    if condition_score >= CONDITION_NOTE_THRESHOLD:
        factors.append(f"Critical condition ({data.patient_condition})")

    department_score = DEPARTMENT_SCORES.get(data.department, DEFAULT_DEPARTMENT_SCORE)
    if department_score >= DEPARTMENT_NOTE_THRESHOLD:
        factors.append(f"High-risk department ({data.department})")

    age_score, age_note = _age_score(data.patient_age)
    if age_note:
        factors.append(age_note)

    quantity_score, quantity_note = _quantity_score(data.units_required)
    if quantity_note:
        factors.append(quantity_note)

    total = condition_score + department_score + age_score + quantity_score

    urgency, rank = Urgency.low, 4
    for threshold, band_urgency, band_rank in URGENCY_BANDS:
        if total >= threshold:
            urgency, rank = band_urgency, band_rank
            break

    return UrgencyResult(
        urgency=urgency,
        priority_rank=rank,
        score=total,
        factors=factors,
        calculation=UrgencyCalculation(
            condition_score=condition_score,
            department_score=department_score,
            age_score=age_score,
            quantity_score=quantity_score,
            total_score=total,
        ),
    )


def urgency_description(urgency: str) -> UrgencyDescription:
    return URGENCY_DESCRIPTIONS.get(urgency, URGENCY_DESCRIPTIONS[Urgency.medium])
