from app.schemas.blood import Urgency, UrgencyInput
from app.services.urgency import calculate_urgency, urgency_description


def test_very_young_icu_patient_is_critical():
    result = calculate_urgency(
        UrgencyInput(patient_age=3, patient_condition="Critical", department="ICU", units_required=9)
    )

    assert result.score == 250
    assert result.urgency == Urgency.critical
    assert result.priority_rank == 1
    assert result.calculation.condition_score == 100
    assert result.calculation.department_score == 80
    assert result.calculation.age_score == 40
    assert result.calculation.quantity_score == 30


def test_under_five_only_gets_the_very_young_note():
    result = calculate_urgency(UrgencyInput(patient_age=4, units_required=1))

    assert result.calculation.age_score == 40
    assert "Very young patient (<5 years)" in result.factors
    assert "Pediatric patient" not in result.factors


def test_factors_follow_evaluation_order():
    result = calculate_urgency(
        UrgencyInput(patient_age=80, patient_condition="Severe", department="Trauma", units_required=8)
    )

    assert result.factors == [
        "Critical condition (Severe)",
        "High-risk department (Trauma)",
        "Elderly patient (>70 years)",
        "Large quantity required (8 units)",
    ]


def test_age_bands():
    scores = {
        age: calculate_urgency(UrgencyInput(patient_age=age)).calculation.age_score
        for age in (2, 12, 30, 65, 71)
    }
    assert scores == {2: 40, 12: 30, 30: 10, 65: 20, 71: 35}


def test_quantity_bands():
    scores = {
        units: calculate_urgency(UrgencyInput(units_required=units)).calculation.quantity_score
        for units in (1, 3, 5, 8)
    }
    assert scores == {1: 5, 3: 10, 5: 20, 8: 30}


def test_unknown_condition_and_department_fall_back():
    result = calculate_urgency(
        UrgencyInput(patient_age=30, patient_condition="Unconscious", department="Basement", units_required=1)
    )

    assert result.calculation.condition_score == 25
    assert result.calculation.department_score == 30
    assert result.factors == []
    # 25 + 30 + 10 + 5
    assert result.score == 70
    assert result.urgency == Urgency.low
    assert result.priority_rank == 4


def test_band_edges():
    # 100 + 80 + 10 + 30 = 220 -> HIGH
    high = calculate_urgency(
        UrgencyInput(patient_age=30, patient_condition="Critical", department="ICU", units_required=8)
    )
    assert (high.urgency, high.priority_rank) == (Urgency.high, 2)

    # 50 + 40 + 10 + 5 = 105 -> MEDIUM
    medium = calculate_urgency(
        UrgencyInput(patient_age=30, patient_condition="Moderate", department="Other", units_required=1)
    )
    assert (medium.urgency, medium.priority_rank) == (Urgency.medium, 3)


def test_defaults_are_stable_general_ward():
    result = calculate_urgency(UrgencyInput())
    # 25 + 30 + 10 + 5
    assert result.score == 70


def test_urgency_description_falls_back_to_medium():
    assert urgency_description("CRITICAL").color == "red"
    assert urgency_description("nonsense").color == "yellow"
