"""
priority calculator

This is the ranking brain of the platform.

Given a blood request (urgency label, blood group, when it was created, an
optional deadline) plus how many units of that group are on the shelf right now,
we produce:
- a composite score (0-255)
- a category (CRITICAL / HIGH / MEDIUM / LOW)
- a per-factor breakdown so anyone can see why a request sits where it sits

Formula:
    score = urgency * 0.40 + rarity * 0.30 + time * 0.20 + availability * 0.10

Every factor is normalized to 0-100 before weighting.

Known quirk worth repeating:
with weights that add up to 1.0 and factors capped at 100 the weighted sum tops
out at 100, so the CRITICAL (>=180) and HIGH (>=140) bands can not be reached
today. The thresholds are kept as they are on purpose, and so is the 255 clamp,
so any future change of weights or scale can not silently move the bands.

Everything here is pure. "now" is a parameter, never read behind your back
unless you leave it out.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from pydantic import TypeAdapter, ValidationError

from app.core.errors import InvalidPriorityInput
from app.schemas.blood import (
    AvailabilityFactor,
    BloodGroup,
    CategoryDetails,
    PriorityBreakdown,
    PriorityCategory,
    PriorityInput,
    PriorityResult,
    PriorityStats,
    RarityFactor,
    TimeFactor,
    Urgency,
    UrgencyFactor,
)


# -------------------------
# Scoring tables
# -------------------------

URGENCY_SCORES: dict[Urgency, int] = {
    Urgency.critical: 100,  # life threatening, immediate need
    Urgency.high: 75,
    Urgency.medium: 50,
    Urgency.low: 25,  # elective or planned
}
DEFAULT_URGENCY_SCORE = 50

# rarer groups score higher so the queue protects scarce inventory
BLOOD_RARITY_SCORES: dict[BloodGroup, int] = {
    BloodGroup.ab_neg: 100,
    BloodGroup.b_neg: 90,
    BloodGroup.a_neg: 80,
    BloodGroup.ab_pos: 70,
    BloodGroup.a_pos: 60,
    BloodGroup.b_pos: 50,
    BloodGroup.o_neg: 40,
    BloodGroup.o_pos: 30,
}
DEFAULT_RARITY_SCORE = 50

# below this many units the availability factor starts to push
MIN_SAFE_STOCK_LEVELS: dict[BloodGroup, int] = {
    BloodGroup.ab_neg: 10,
    BloodGroup.b_neg: 15,
    BloodGroup.a_neg: 15,
    BloodGroup.ab_pos: 20,
    BloodGroup.a_pos: 30,
    BloodGroup.b_pos: 30,
    BloodGroup.o_neg: 20,
    BloodGroup.o_pos: 50,
}
DEFAULT_MIN_SAFE_LEVEL = 20

MAX_FACTOR_SCORE = 100.0
MAX_PRIORITY_SCORE = 255

# age mode: linear ramp that reaches the max after 10 hours of waiting
HOURS_TO_MAX_TIME = 10
POINTS_PER_MINUTE = MAX_FACTOR_SCORE / (HOURS_TO_MAX_TIME * 60)

# deadline mode: exponential decay per hour left
DEADLINE_DECAY_RATE = 0.3

# (minimum score, category), checked top down
CATEGORY_THRESHOLDS: tuple[tuple[int, PriorityCategory], ...] = (
    (180, PriorityCategory.critical),
    (140, PriorityCategory.high),
    (80, PriorityCategory.medium),
)

CATEGORY_DETAILS: dict[PriorityCategory, CategoryDetails] = {
    PriorityCategory.critical: CategoryDetails(
        color="red",
        icon="🔴",
        emoji="🚨",
        label="CRITICAL",
        action_required="Immediate action - escalate now",
        response_time="< 5 minutes",
    ),
    PriorityCategory.high: CategoryDetails(
        color="orange",
        icon="🟠",
        emoji="⚠️",
        label="HIGH",
        action_required="Urgent - process immediately",
        response_time="5-15 minutes",
    ),
    PriorityCategory.medium: CategoryDetails(
        color="yellow",
        icon="🟡",
        emoji="📌",
        label="MEDIUM",
        action_required="Standard - process normally",
        response_time="15-45 minutes",
    ),
    PriorityCategory.low: CategoryDetails(
        color="green",
        icon="🟢",
        emoji="✅",
        label="LOW",
        action_required="Routine - can be scheduled",
        response_time="> 45 minutes",
    ),
}


@dataclass(frozen=True)
class PriorityWeights:
    """
    How much each factor contributes to the composite score.

    These must add up to 1.0. That is checked once at startup
    (see PriorityRequestHandler.validate_configuration), not on every call.
    """
    urgency: float = 0.40
    rarity: float = 0.30
    time: float = 0.20
    availability: float = 0.10

    @property
    def total(self) -> float:
        return self.urgency + self.rarity + self.time + self.availability

    def as_dict(self) -> dict[str, float]:
        return {
            "urgency": self.urgency,
            "rarity": self.rarity,
            "time": self.time,
            "availability": self.availability,
        }


DEFAULT_WEIGHTS = PriorityWeights()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # stored documents may carry naive datetimes, treat them as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_DATETIME = TypeAdapter(datetime)


def _parse_datetime(value: Union[datetime, str]) -> datetime:
    # scored records coming back from JSON carry ISO-8601 strings
    return _as_utc(_DATETIME.validate_python(value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _minutes_between(start: datetime, end: datetime) -> float:
    return (_as_utc(end) - _as_utc(start)).total_seconds() / 60.0


# -------------------------
# Factor scores (0-100 each)
# -------------------------


def get_urgency_score(urgency: str) -> int:
    return URGENCY_SCORES.get(urgency, DEFAULT_URGENCY_SCORE)


def get_rarity_score(blood_group: str) -> int:
    return BLOOD_RARITY_SCORES.get(blood_group, DEFAULT_RARITY_SCORE)


def get_min_safe_level(blood_group: str) -> int:
    return MIN_SAFE_STOCK_LEVELS.get(blood_group, DEFAULT_MIN_SAFE_LEVEL)


def get_time_score(
    created_at: datetime,
    required_by: Optional[datetime],
    now: datetime,
) -> float:
    """
    Time pressure on a request.

    Two modes:
    - with a deadline: 100 once the deadline has passed, otherwise
      100 * e^(-0.3 * hours_left). Pressure climbs fast in the last few hours.
    - without a deadline: linear in waiting time, 100 after 10 hours.

    This is the only factor that changes while nothing else about the
    request does, which is why pending requests get recalculated in batch.
    """
    if required_by is not None:
        minutes_until_deadline = _minutes_between(now, required_by)
        if minutes_until_deadline < 0:
            return MAX_FACTOR_SCORE

        hours_until_deadline = minutes_until_deadline / 60.0
        score = MAX_FACTOR_SCORE * math.exp(-DEADLINE_DECAY_RATE * hours_until_deadline)
        return min(score, MAX_FACTOR_SCORE)

    # a created_at slightly in the future (clock skew) counts as brand new
    minutes_old = max(_minutes_between(created_at, now), 0.0)
    return min(minutes_old * POINTS_PER_MINUTE, MAX_FACTOR_SCORE)


def get_availability_score(blood_group: str, current_units: int) -> float:
    """
    Shortage pressure. Zero while stock is at or above the safe level,
    then proportional to the deficit.
    """
    min_safe_level = get_min_safe_level(blood_group)
    if current_units >= min_safe_level:
        return 0.0

    deficit = min_safe_level - current_units
    score = (deficit / min_safe_level) * MAX_FACTOR_SCORE
    return min(score, MAX_FACTOR_SCORE)


def categorize_priority(score: int) -> PriorityCategory:
    for threshold, category in CATEGORY_THRESHOLDS:
        if score >= threshold:
            return category
    return PriorityCategory.low


def category_details(category: Optional[str]) -> CategoryDetails:
    return CATEGORY_DETAILS.get(category, CATEGORY_DETAILS[PriorityCategory.medium])


# -------------------------
# Composite score
# -------------------------


def _coerce_input(request: Union[PriorityInput, Mapping[str, Any]]) -> PriorityInput:
    if isinstance(request, PriorityInput):
        urgency, blood_group = request.urgency, request.blood_group
    elif request:
        urgency, blood_group = request.get("urgency"), request.get("blood_group")
    else:
        urgency = blood_group = None

    if not urgency or not blood_group:
        raise InvalidPriorityInput(
            "Invalid request data for priority calculation. "
            "Required: urgency, blood_group, created_at"
        )

    if isinstance(request, PriorityInput):
        return request

    try:
        return PriorityInput.model_validate(
            {
                "urgency": request["urgency"],
                "blood_group": request["blood_group"],
                "created_at": request.get("created_at"),
                "required_by": request.get("required_by"),
                "current_blood_availability": request.get("current_blood_availability") or 0,
            }
        )
    except ValidationError as exc:
        raise InvalidPriorityInput(f"Invalid request data for priority calculation: {exc}") from exc


def calculate_priority(
    request: Union[PriorityInput, Mapping[str, Any]],
    current_availability: Optional[int] = None,
    now: Optional[datetime] = None,
    weights: PriorityWeights = DEFAULT_WEIGHTS,
) -> PriorityResult:
    """
    Scores a single request.

    request can be a PriorityInput or a stored request document (a dict with
    urgency, blood_group, created_at and optionally required_by).
    current_availability overrides the units carried on the request itself.

    Raises InvalidPriorityInput when urgency or blood_group is missing.
    """
    data = _coerce_input(request)
    urgency_label = getattr(data.urgency, "value", data.urgency)
    group_label = getattr(data.blood_group, "value", data.blood_group)
    now = _as_utc(now or utc_now())
    units = data.current_blood_availability if current_availability is None else current_availability

    urgency_score = get_urgency_score(data.urgency)
    rarity_score = get_rarity_score(data.blood_group)
    time_score = get_time_score(data.created_at, data.required_by, now)
    availability_score = get_availability_score(data.blood_group, units)

    weighted_total = (
        urgency_score * weights.urgency
        + rarity_score * weights.rarity
        + time_score * weights.time
        + availability_score * weights.availability
    )

    # 255 is the top of the category scale, keep it even though today's
    # weights never get past 100
    score = max(0, min(_round_half_up(weighted_total), MAX_PRIORITY_SCORE))

    minutes_until_deadline = None
    if data.required_by is not None:
        minutes_until_deadline = round(_minutes_between(now, data.required_by))

    breakdown = PriorityBreakdown(
        urgency=UrgencyFactor(
            raw=urgency_score,
            weighted=round(urgency_score * weights.urgency, 2),
            weight=weights.urgency,
            label=urgency_label,
        ),
        rarity=RarityFactor(
            raw=rarity_score,
            weighted=round(rarity_score * weights.rarity, 2),
            weight=weights.rarity,
            label=group_label,
        ),
        time=TimeFactor(
            raw=round(time_score, 2),
            weighted=round(time_score * weights.time, 2),
            weight=weights.time,
            minutes_old=round(_minutes_between(data.created_at, now)),
            minutes_until_deadline=minutes_until_deadline,
        ),
        availability=AvailabilityFactor(
            raw=round(availability_score, 2),
            weighted=round(availability_score * weights.availability, 2),
            weight=weights.availability,
            current_units=units,
            min_safe_level=get_min_safe_level(data.blood_group),
        ),
    )

    return PriorityResult(
        score=score,
        category=categorize_priority(score),
        breakdown=breakdown,
        calculated_at=now,
    )


def recalculate_priority(
    request: Union[PriorityInput, Mapping[str, Any]],
    current_availability: Optional[int] = None,
    now: Optional[datetime] = None,
    weights: PriorityWeights = DEFAULT_WEIGHTS,
) -> PriorityResult:
    """Same math as calculate_priority, named for the refresh use case."""
    return calculate_priority(request, current_availability, now=now, weights=weights)


# -------------------------
# Helpers over already scored requests
# -------------------------


def _created_key(request: Mapping[str, Any]) -> datetime:
    created_at = request.get("created_at")
    if created_at is None:
        return datetime.max.replace(tzinfo=timezone.utc)
    return _parse_datetime(created_at)


def sort_by_priority(requests: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """
    Highest score first. Equal scores: older request first (FIFO among equals).

    Returns a new list, the input is left alone. sorted() is stable so requests
    that tie on both keys keep their incoming order.
    """
    return sorted(
        requests,
        key=lambda r: (-(r.get("priority_score") or 0), _created_key(r)),
    )


def filter_by_category(
    requests: Iterable[Mapping[str, Any]],
    category: str,
) -> list[Mapping[str, Any]]:
    return [r for r in requests if r.get("priority_category") == category]


def get_priority_stats(
    requests: Sequence[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> PriorityStats:
    by_category = {c.value: 0 for c in PriorityCategory}
    by_urgency = {u.value: 0 for u in Urgency}

    if not requests:
        return PriorityStats(
            total=0,
            by_category=by_category,
            by_urgency=by_urgency,
            average_score=0,
            average_age_minutes=0,
        )

    now = _as_utc(now or utc_now())
    total_score = 0
    total_age = 0.0

    for r in requests:
        category = r.get("priority_category")
        if category in by_category:
            by_category[category] += 1

        urgency = r.get("urgency")
        if urgency in by_urgency:
            by_urgency[urgency] += 1

        total_score += r.get("priority_score") or 0
        if r.get("created_at") is not None:
            total_age += _minutes_between(_parse_datetime(r["created_at"]), now)

    return PriorityStats(
        total=len(requests),
        by_category=by_category,
        by_urgency=by_urgency,
        average_score=round(total_score / len(requests)),
        average_age_minutes=round(total_age / len(requests)),
    )


def get_score_distribution(
    requests: Iterable[Mapping[str, Any]],
    bucket_size: int = 20,
) -> dict[str, int]:
    """
    Histogram of priority scores in fixed buckets ("0-19", "20-39", ...)
    covering the whole 0-255 scale. Every bucket is present, even when empty.
    """
    if bucket_size <= 0:
        raise ValueError("bucket_size must be positive")

    buckets: dict[str, int] = {}
    for start in range(0, MAX_PRIORITY_SCORE + 1, bucket_size):
        buckets[f"{start}-{start + bucket_size - 1}"] = 0

    for r in requests:
        score = r.get("priority_score") or 0
        start = (score // bucket_size) * bucket_size
        label = f"{start}-{start + bucket_size - 1}"
        if label in buckets:
            buckets[label] += 1

    return buckets


# -------------------------
# Validation helpers
# -------------------------


def valid_urgencies() -> list[str]:
    return [u.value for u in URGENCY_SCORES]


def valid_blood_groups() -> list[str]:
    return [g.value for g in BLOOD_RARITY_SCORES]


def is_valid_urgency(urgency: str) -> bool:
    return urgency in valid_urgencies()


def is_valid_blood_group(blood_group: str) -> bool:
    return blood_group in valid_blood_groups()
