from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class BloodGroup(str, Enum):
    a_pos = "A+"
    a_neg = "A-"
    b_pos = "B+"
    b_neg = "B-"
    ab_pos = "AB+"
    ab_neg = "AB-"
    o_pos = "O+"
    o_neg = "O-"


class Urgency(str, Enum):
    critical = "CRITICAL"
    high = "HIGH"
    medium = "MEDIUM"
    low = "LOW"


class PriorityCategory(str, Enum):
    critical = "CRITICAL"
    high = "HIGH"
    medium = "MEDIUM"
    low = "LOW"


class PatientCondition(str, Enum):
    critical = "Critical"
    severe = "Severe"
    moderate = "Moderate"
    stable = "Stable"


class Department(str, Enum):
    icu = "ICU"
    emergency = "Emergency"
    operation_theatre = "Operation Theatre"
    cardiology = "Cardiology"
    trauma = "Trauma"
    general_ward = "General Ward"
    other = "Other"


class RequestStatus(str, Enum):
    pending = "PENDING"
    approved = "APPROVED"
    accepted = "ACCEPTED"
    processing = "PROCESSING"
    fulfilled = "FULFILLED"
    rejected = "REJECTED"
    cancelled = "CANCELLED"
    expired = "EXPIRED"


# -------------------------
# urgency classification
# -------------------------


class UrgencyInput(BaseModel):
    """
    Patient and context signals used to label a new request.

    Condition and department are plain strings on purpose:
    an unknown value falls back to the default score instead of
    rejecting the request.
    """
    patient_age: int = 30
    patient_condition: str = PatientCondition.stable.value
    department: str = Department.general_ward.value
    units_required: int = 1


class UrgencyCalculation(BaseModel):
    condition_score: int
    department_score: int
    age_score: int
    quantity_score: int
    total_score: int


class UrgencyResult(BaseModel):
    urgency: Urgency
    priority_rank: int = Field(ge=1, le=4)
    score: int

    # human readable reasons, in evaluation order
    factors: list[str] = Field(default_factory=list)

    calculation: UrgencyCalculation


class UrgencyDescription(BaseModel):
    label: str
    description: str
    color: str


# -------------------------
# composite priority
# -------------------------


class PriorityInput(BaseModel):
    urgency: str
    blood_group: str
    created_at: datetime
    required_by: Optional[datetime] = None
    current_blood_availability: int = Field(default=0, ge=0)


class FactorScore(BaseModel):
    raw: float
    weighted: float
    weight: float


class UrgencyFactor(FactorScore):
    label: str


class RarityFactor(FactorScore):
    label: str


class TimeFactor(FactorScore):
    minutes_old: int
    minutes_until_deadline: Optional[int] = None


class AvailabilityFactor(FactorScore):
    current_units: int
    min_safe_level: int


class PriorityBreakdown(BaseModel):
    """
    Per-factor view of a priority score.

    Keeps both the 0-100 raw value and the weighted contribution so
    dashboards and audits can show exactly where the points came from.
    """
    urgency: UrgencyFactor
    rarity: RarityFactor
    time: TimeFactor
    availability: AvailabilityFactor


class PriorityResult(BaseModel):
    score: int = Field(ge=0, le=255)
    category: PriorityCategory
    breakdown: PriorityBreakdown
    calculated_at: datetime


class CategoryDetails(BaseModel):
    color: str
    icon: str
    emoji: str
    label: str
    action_required: str
    response_time: str


class PriorityResponse(BaseModel):
    score: int
    category: str
    category_details: CategoryDetails
    breakdown: dict[str, Any] = Field(default_factory=dict)
    calculated_at: Optional[datetime] = None
    recalculated_at: Optional[datetime] = None
    action_required: str
    expected_response_time: str


# -------------------------
# queue, stats, batch
# -------------------------


class QueueItem(BaseModel):
    id: str
    request_code: Optional[str] = None
    blood_group: str
    units_required: Optional[int] = None
    hospital_id: Optional[str] = None
    blood_bank_id: Optional[str] = None
    urgency: Optional[str] = None
    priority: PriorityResponse
    created_at: Optional[datetime] = None
    status: Optional[str] = None


class OrganizationSummary(BaseModel):
    id: Optional[str] = None
    name: str
    code: Optional[str] = None
    type: str
    location: Optional[str] = None


class QueueItemWithOrg(QueueItem):
    raised_from: Optional[OrganizationSummary] = None
    assigned_to: OrganizationSummary


class PriorityStats(BaseModel):
    total: int
    by_category: dict[str, int]
    by_urgency: dict[str, int]
    average_score: int
    average_age_minutes: int


class DashboardTotals(BaseModel):
    total_requests: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    average_score: int = 0
    max_score: int = 0
    min_score: int = 0


class CategorySummary(BaseModel):
    count: int
    color: str
    emoji: str
    action_required: str


class PriorityDashboard(BaseModel):
    totals: DashboardTotals
    by_category: dict[str, int]
    by_urgency: dict[str, int]
    by_blood_group: dict[str, int]
    distribution: dict[str, int]
    category_summary: dict[str, CategorySummary]


class BatchRecalculationResult(BaseModel):
    total_processed: int
    updated: int
    errors: int
    success: bool


class ConfigValidation(BaseModel):
    valid_urgencies: list[str]
    valid_blood_groups: list[str]
    weights: dict[str, float]
    total_weight: float
    is_valid: bool
    error: Optional[str] = None


# -------------------------
# intake and stock payloads
# -------------------------


class CreateBloodRequest(BaseModel):
    """
    What a hospital sends when it needs blood.

    If any patient field is present, urgency is derived from it and an
    explicit urgency is ignored. Otherwise the explicit urgency (or MEDIUM)
    is used as is.
    """
    hospital_id: str
    blood_bank_id: Optional[str] = None
    blood_group: BloodGroup
    units_required: int = Field(ge=1)
    component: str = "WHOLE_BLOOD"

    urgency: Optional[Urgency] = None
    patient_age: Optional[int] = None
    patient_condition: Optional[str] = None
    department: Optional[str] = None

    required_by: Optional[datetime] = None
    medical_reason: str = ""

    def has_patient_data(self) -> bool:
        return any(
            v is not None
            for v in (self.patient_age, self.patient_condition, self.department)
        )


class CreateBloodRequestResponse(BaseModel):
    message: str
    request: dict[str, Any]
    priority: Optional[PriorityResponse] = None
    urgency_calculation: Optional[UrgencyResult] = None


class RecalculationResponse(BaseModel):
    old_priority: dict[str, Any]
    new_priority: PriorityResult
    priority: Optional[PriorityResponse] = None


class Organization(BaseModel):
    id: str
    name: str
    organization_code: Optional[str] = None
    type: str
    location: Optional[str] = None


class StockLevel(BaseModel):
    blood_group: str
    units: int
    min_safe_level: int


class StockUpdate(BaseModel):
    units: int = Field(ge=0)


class StockUpdateResponse(BaseModel):
    blood_group: str
    units: int
    refreshed: int
