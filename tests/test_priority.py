from datetime import datetime, timedelta

import pytest

from app.core.errors import InvalidPriorityInput
from app.schemas.blood import PriorityCategory, PriorityInput
from app.services.priority import (
    DEFAULT_WEIGHTS,
    MIN_SAFE_STOCK_LEVELS,
    PriorityWeights,
    calculate_priority,
    categorize_priority,
    category_details,
    filter_by_category,
    get_availability_score,
    get_priority_stats,
    get_score_distribution,
    get_time_score,
    is_valid_blood_group,
    is_valid_urgency,
    sort_by_priority,
)
from conftest import NOW


def _input(**overrides) -> PriorityInput:
    data = {
        "urgency": "CRITICAL",
        "blood_group": "AB-",
        "created_at": NOW,
        "required_by": None,
    }
    data.update(overrides)
    return PriorityInput(**data)


def test_weights_add_up_to_one():
    assert DEFAULT_WEIGHTS.total == pytest.approx(1.0, abs=0.01)


def test_brand_new_critical_rare_out_of_stock_is_only_medium():
    result = calculate_priority(_input(), current_availability=0, now=NOW)

    assert result.breakdown.urgency.raw == 100
    assert result.breakdown.rarity.raw == 100
    assert result.breakdown.time.raw == 0
    assert result.breakdown.availability.raw == 100
    assert result.score == 80
    assert result.category == PriorityCategory.medium


def test_every_factor_maxed_still_tops_out_at_100():
    result = calculate_priority(
        _input(required_by=NOW - timedelta(minutes=1)),
        current_availability=0,
        now=NOW,
    )

    assert result.breakdown.time.raw == 100
    assert result.score == 100
    assert result.category == PriorityCategory.medium


def test_breakdown_keeps_raw_weighted_and_weight():
    result = calculate_priority(_input(urgency="HIGH", blood_group="O+"), current_availability=25, now=NOW)
    urgency = result.breakdown.urgency
    availability = result.breakdown.availability

    assert (urgency.raw, urgency.weight, urgency.weighted) == (75, 0.40, 30.0)
    assert urgency.label == "HIGH"
    assert result.breakdown.rarity.label == "O+"
    assert availability.current_units == 25
    assert availability.min_safe_level == 50
    assert availability.raw == 50
    assert availability.weighted == 5.0
    assert result.calculated_at == NOW


def test_low_common_well_stocked_request_is_low():
    result = calculate_priority(_input(urgency="LOW", blood_group="O+"), current_availability=100, now=NOW)

    # 25 * 0.4 + 30 * 0.3
    assert result.score == 19
    assert result.category == PriorityCategory.low


def test_unknown_labels_use_defaults():
    result = calculate_priority(_input(urgency="URGENT", blood_group="XX"), current_availability=100, now=NOW)

    assert result.breakdown.urgency.raw == 50
    assert result.breakdown.rarity.raw == 50
    assert result.breakdown.availability.min_safe_level == 20


def test_age_mode_time_score_is_linear_and_capped():
    assert get_time_score(NOW - timedelta(hours=5), None, NOW) == pytest.approx(50.0)
    assert get_time_score(NOW - timedelta(hours=12), None, NOW) == 100.0
    assert get_time_score(NOW + timedelta(minutes=5), None, NOW) == 0.0


def test_deadline_mode_time_score_decays_exponentially():
    two_hours = get_time_score(NOW, NOW + timedelta(hours=2), NOW)
    ten_hours = get_time_score(NOW, NOW + timedelta(hours=10), NOW)

    assert two_hours == pytest.approx(54.88, abs=0.01)
    assert ten_hours == pytest.approx(4.98, abs=0.01)
    assert get_time_score(NOW, NOW, NOW) == 100.0
    assert get_time_score(NOW, NOW - timedelta(seconds=1), NOW) == 100.0


def test_deadline_mode_ignores_age():
    old_with_far_deadline = get_time_score(NOW - timedelta(hours=20), NOW + timedelta(hours=10), NOW)
    assert old_with_far_deadline < 5


def test_availability_score():
    assert get_availability_score("O+", 50) == 0.0
    assert get_availability_score("O+", 80) == 0.0
    assert get_availability_score("O+", 25) == pytest.approx(50.0)
    assert get_availability_score("AB-", 0) == 100.0


def test_lower_stock_never_lowers_the_score():
    for group, safe_level in MIN_SAFE_STOCK_LEVELS.items():
        scores = [
            calculate_priority(_input(blood_group=group.value), current_availability=units, now=NOW).score
            for units in range(safe_level, -1, -1)
        ]
        assert scores == sorted(scores), group


def test_score_in_range_and_category_matches_thresholds():
    for urgency in ("CRITICAL", "HIGH", "MEDIUM", "LOW"):
        for group in ("O+", "O-", "A+", "A-", "B+", "B-", "AB+", "AB-"):
            for units in (0, 5, 100):
                result = calculate_priority(
                    _input(urgency=urgency, blood_group=group, created_at=NOW - timedelta(hours=3)),
                    current_availability=units,
                    now=NOW,
                )
                assert 0 <= result.score <= 255
                assert result.category == categorize_priority(result.score)


def test_same_inputs_same_result():
    request = _input(required_by=NOW + timedelta(hours=4))
    first = calculate_priority(request, current_availability=3, now=NOW)
    second = calculate_priority(request, current_availability=3, now=NOW)

    assert first == second


def test_score_is_clamped_to_255():
    heavy = PriorityWeights(urgency=2.0, rarity=2.0, time=1.0, availability=1.0)
    result = calculate_priority(
        _input(required_by=NOW - timedelta(hours=1)),
        current_availability=0,
        now=NOW,
        weights=heavy,
    )

    assert result.score == 255
    assert result.category == PriorityCategory.critical


def test_category_thresholds():
    assert categorize_priority(255) == PriorityCategory.critical
    assert categorize_priority(180) == PriorityCategory.critical
    assert categorize_priority(179) == PriorityCategory.high
    assert categorize_priority(140) == PriorityCategory.high
    assert categorize_priority(139) == PriorityCategory.medium
    assert categorize_priority(80) == PriorityCategory.medium
    assert categorize_priority(79) == PriorityCategory.low
    assert categorize_priority(0) == PriorityCategory.low


@pytest.mark.parametrize(
    "document",
    [
        {"blood_group": "O+", "created_at": NOW},
        {"urgency": "HIGH", "created_at": NOW},
        {"urgency": "", "blood_group": "O+", "created_at": NOW},
        {"urgency": "HIGH", "blood_group": "O+"},
        {},
    ],
)
def test_missing_mandatory_fields_raise(document):
    with pytest.raises(InvalidPriorityInput):
        calculate_priority(document, current_availability=0, now=NOW)


def test_accepts_stored_documents_with_naive_datetimes():
    document = {
        "urgency": "MEDIUM",
        "blood_group": "A+",
        "created_at": datetime(2026, 3, 1, 7, 0),
        "priority_score": 12,
    }
    result = calculate_priority(document, current_availability=30, now=NOW)

    # 5 hours old -> time 50; 50*0.4 + 60*0.3 + 50*0.2
    assert result.breakdown.time.minutes_old == 300
    assert result.score == 48


def test_availability_on_the_input_is_used_when_not_overridden():
    result = calculate_priority(_input(current_blood_availability=5), now=NOW)
    assert result.breakdown.availability.current_units == 5


def test_category_details_falls_back_to_medium():
    assert category_details("CRITICAL").response_time == "< 5 minutes"
    assert category_details(None).label == "MEDIUM"


def test_validators():
    assert is_valid_urgency("HIGH")
    assert not is_valid_urgency("high")
    assert is_valid_blood_group("AB-")
    assert not is_valid_blood_group("C+")


# -------------------------
# helpers over scored requests
# -------------------------


def test_sort_by_priority_breaks_ties_by_age():
    requests = [
        {"id": "newer", "priority_score": 70, "created_at": NOW - timedelta(minutes=5)},
        {"id": "top", "priority_score": 90, "created_at": NOW},
        {"id": "older", "priority_score": 70, "created_at": NOW - timedelta(hours=1)},
        {"id": "bottom", "priority_score": 10, "created_at": NOW - timedelta(hours=9)},
    ]

    assert [r["id"] for r in sort_by_priority(requests)] == ["top", "older", "newer", "bottom"]
    # input untouched
    assert requests[0]["id"] == "newer"


def test_sort_by_priority_is_stable_on_full_ties():
    requests = [{"id": str(i), "priority_score": 50, "created_at": NOW} for i in range(5)]
    assert [r["id"] for r in sort_by_priority(requests)] == ["0", "1", "2", "3", "4"]


def test_filter_by_category():
    requests = [
        {"id": "a", "priority_category": "MEDIUM"},
        {"id": "b", "priority_category": "LOW"},
        {"id": "c", "priority_category": "MEDIUM"},
    ]
    assert [r["id"] for r in filter_by_category(requests, "MEDIUM")] == ["a", "c"]


def test_priority_stats():
    requests = [
        {"priority_score": 80, "priority_category": "MEDIUM", "urgency": "CRITICAL", "created_at": NOW - timedelta(minutes=30)},
        {"priority_score": 40, "priority_category": "LOW", "urgency": "LOW", "created_at": NOW - timedelta(minutes=90)},
    ]
    stats = get_priority_stats(requests, now=NOW)

    assert stats.total == 2
    assert stats.by_category == {"CRITICAL": 0, "HIGH": 0, "MEDIUM": 1, "LOW": 1}
    assert stats.by_urgency == {"CRITICAL": 1, "HIGH": 0, "MEDIUM": 0, "LOW": 1}
    assert stats.average_score == 60
    assert stats.average_age_minutes == 60


def test_priority_stats_empty():
    stats = get_priority_stats([], now=NOW)
    assert stats.total == 0
    assert stats.average_score == 0


def test_score_distribution_empty_has_all_buckets_at_zero():
    buckets = get_score_distribution([])

    assert len(buckets) == 13
    assert list(buckets)[0] == "0-19"
    assert list(buckets)[-1] == "240-259"
    assert set(buckets.values()) == {0}


def test_score_distribution_counts():
    requests = [{"priority_score": s} for s in (0, 19, 20, 80, 99, 255)]
    buckets = get_score_distribution(requests, bucket_size=50)

    assert buckets == {"0-49": 3, "50-99": 2, "100-149": 0, "150-199": 0, "200-249": 0, "250-299": 1}


def test_sort_by_priority_parses_iso_string_dates():
    requests = [
        {"id": "newer", "priority_score": 50, "created_at": "2026-03-01T11:00:00Z"},
        {"id": "older", "priority_score": 50, "created_at": "2026-03-01T10:00:00+00:00"},
        {"id": "oldest", "priority_score": 50, "created_at": NOW - timedelta(hours=3)},
    ]

    assert [r["id"] for r in sort_by_priority(requests)] == ["oldest", "older", "newer"]


def test_priority_stats_parses_iso_string_dates():
    requests = [
        {"priority_score": 80, "priority_category": "MEDIUM", "urgency": "HIGH", "created_at": "2026-03-01T11:30:00Z"},
        {"priority_score": 40, "priority_category": "LOW", "urgency": "LOW", "created_at": "2026-03-01T10:30:00Z"},
    ]
    stats = get_priority_stats(requests, now=NOW)

    assert stats.average_age_minutes == 60


@pytest.mark.parametrize(
    "fields",
    [
        {"urgency": "", "blood_group": ""},
        {"urgency": "HIGH", "blood_group": ""},
        {"urgency": "", "blood_group": "O+"},
    ],
)
def test_typed_input_with_empty_fields_raises(fields):
    with pytest.raises(InvalidPriorityInput):
        calculate_priority(_input(**fields), current_availability=0, now=NOW)
