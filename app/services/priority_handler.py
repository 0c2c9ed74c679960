"""
priority request handler

The calculators in priority.py and urgency.py are pure. This module is where
they meet live state:
- current stock levels (how many units of a group are on the shelf)
- stored blood requests

It owns the whole life of the priority fields on a request:
- enrichment when a request is created
- recalculation on demand, in batch, or when stock changes
- shaping ranked queues and dashboard numbers for the API

Failure policy (important):
everything here is fail-open. A scoring bug must never block a hospital from
filing a blood request, so enrichment falls back to MEDIUM/50 and batch work
counts failures instead of raising. Only the bare calculator raises, and only
when someone calls it directly with missing fields.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from app.core.errors import RequestNotFound
from app.core.store import DocumentStore
from app.schemas.blood import (
    BatchRecalculationResult,
    CategorySummary,
    ConfigValidation,
    CreateBloodRequest,
    DashboardTotals,
    OrganizationSummary,
    PriorityCategory,
    PriorityDashboard,
    PriorityResponse,
    PriorityResult,
    QueueItem,
    QueueItemWithOrg,
    RequestStatus,
    Urgency,
    UrgencyInput,
    UrgencyResult,
)
from app.services.priority import (
    DEFAULT_WEIGHTS,
    PriorityWeights,
    calculate_priority,
    category_details,
    filter_by_category,
    get_priority_stats,
    get_score_distribution,
    sort_by_priority,
    utc_now,
    valid_blood_groups,
    valid_urgencies,
)
from app.services.urgency import calculate_urgency

logger = logging.getLogger(__name__)

# what a request gets when its priority could not be computed
FALLBACK_SCORE = 50
FALLBACK_CATEGORY = PriorityCategory.medium

WEIGHT_TOLERANCE = 0.01

# intake defaults when the hospital leaves a patient field out
DEFAULT_PATIENT_AGE = 30


class PriorityRequestHandler:
    def __init__(
        self,
        store: DocumentStore,
        weights: PriorityWeights = DEFAULT_WEIGHTS,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.weights = weights
        self.clock = clock
        self.max_workers = max(1, max_workers)

    # -------------------------
    # Stock
    # -------------------------

    def get_blood_availability(self, blood_group: str) -> int:
        """Units on hand for a group. 0 if unknown or if the lookup fails."""
        try:
            return self.store.get_stock_units(blood_group)
        except Exception:
            logger.exception("Error getting availability for %s", blood_group)
            return 0

    def get_stock_levels(self) -> dict[str, int]:
        """Units on hand for every blood group, 0 for groups never stocked."""
        levels = {group: 0 for group in valid_blood_groups()}
        levels.update(self.store.list_stock())
        return levels

    def update_stock(self, blood_group: str, units: int) -> int:
        """
        Stores a new stock level and refreshes every pending request of that group.

        Returns how many requests were refreshed.
        """
        self.store.set_stock_units(blood_group, units)

        now = self.clock()
        pending = self.store.find_requests(
            {
                "status": RequestStatus.pending.value,
                "is_active": True,
                "blood_group": blood_group,
            }
        )

        refreshed = 0
        for request in pending:
            try:
                self._refresh_document(request, now)
                refreshed += 1
            except Exception:
                logger.exception("Error refreshing priority for %s after stock change", request.get("id"))

        logger.info("Stock for %s set to %d units, %d pending requests refreshed", blood_group, units, refreshed)
        return refreshed

    # -------------------------
    # Enrichment and recalculation
    # -------------------------

    def enrich_request_with_priority(
        self,
        request_data: Mapping[str, Any],
        current_availability: int = 0,
    ) -> dict[str, Any]:
        """
        Returns a copy of request_data with the priority fields filled in.

        The request is scored as if created right now. If scoring fails for any
        reason the copy gets the MEDIUM/50 fallback and no details.
        """
        now = self.clock()
        enriched = dict(request_data)

        try:
            result = calculate_priority(
                {
                    "urgency": request_data.get("urgency"),
                    "blood_group": request_data.get("blood_group"),
                    "created_at": now,
                    "required_by": request_data.get("required_by"),
                },
                current_availability,
                now=now,
                weights=self.weights,
            )
        except Exception:
            logger.exception("Error enriching request with priority, using fallback")
            enriched.update(
                priority_score=FALLBACK_SCORE,
                priority_category=FALLBACK_CATEGORY.value,
                priority_details=None,
            )
            return enriched

        enriched.update(
            priority_score=result.score,
            priority_category=result.category.value,
            priority_details=result.breakdown.model_dump(),
            priority_calculated_at=now,
        )
        return enriched

    def recalculate_and_update_priority(
        self,
        request_id: str,
        request: Mapping[str, Any],
        current_availability: int = 0,
    ) -> Optional[PriorityResult]:
        """
        Recomputes a stored request and writes the result back.

        priority_calculated_at is left alone, priority_recalculated_at records
        the refresh. Returns None when the calculation or the write fails.
        """
        try:
            result = calculate_priority(
                request,
                current_availability,
                now=self.clock(),
                weights=self.weights,
            )
            written = self.store.update_priority(
                request_id,
                result.score,
                result.category.value,
                result.breakdown.model_dump(),
                result.calculated_at,
            )
        except Exception:
            logger.exception("Error recalculating priority for %s", request_id)
            return None

        if not written:
            logger.warning("Priority not stored, request %s does not exist", request_id)
            return None

        logger.info("Priority recalculated for request %s: %s (%d)", request_id, result.category.value, result.score)
        return result

    def recalculate_request(self, request_id: str) -> tuple[dict[str, Any], Optional[PriorityResult]]:
        """
        Loads a request, refreshes it with the current stock level and
        returns (request before the refresh, new result or None).
        """
        request = self.get_request(request_id)
        availability = self.get_blood_availability(request.get("blood_group"))
        return request, self.recalculate_and_update_priority(request_id, request, availability)

    def _refresh_document(self, request: Mapping[str, Any], now: datetime) -> PriorityResult:
        # strict variant used by batch work, errors bubble up to be counted
        availability = self.get_blood_availability(request.get("blood_group"))
        result = calculate_priority(request, availability, now=now, weights=self.weights)
        written = self.store.update_priority(
            request["id"],
            result.score,
            result.category.value,
            result.breakdown.model_dump(),
            now,
        )
        if not written:
            raise RequestNotFound(request["id"])
        return result

    def batch_recalculate_priorities(self) -> BatchRecalculationResult:
        """
        Refreshes every pending, active request.

        Items are independent, so they run on a small thread pool. One bad
        request is logged and counted, the rest still get processed.
        """
        try:
            requests = self.store.find_requests(
                {"status": RequestStatus.pending.value, "is_active": True}
            )
        except Exception:
            logger.exception("Error loading pending requests for batch recalculation")
            return BatchRecalculationResult(total_processed=0, updated=0, errors=1, success=False)

        now = self.clock()
        updated = 0
        errors = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(self._refresh_document, r, now): r for r in requests}
            for future in as_completed(futures):
                try:
                    future.result()
                    updated += 1
                except Exception:
                    logger.exception("Error recalculating priority for %s", futures[future].get("id"))
                    errors += 1

        logger.info("Batch priority recalculation: %d updated, %d errors", updated, errors)

        return BatchRecalculationResult(
            total_processed=len(requests),
            updated=updated,
            errors=errors,
            success=errors == 0,
        )

    # -------------------------
    # Intake
    # -------------------------

    def create_request(self, payload: CreateBloodRequest) -> tuple[dict[str, Any], Optional[UrgencyResult]]:
        """
        Files a new blood request.

        Urgency comes from the patient details when the hospital sent any,
        otherwise from the explicit urgency (MEDIUM if none).
        """
        urgency_calculation = None
        if payload.has_patient_data():
            urgency_calculation = calculate_urgency(
                UrgencyInput(
                    patient_age=payload.patient_age if payload.patient_age is not None else DEFAULT_PATIENT_AGE,
                    patient_condition=payload.patient_condition or "Stable",
                    department=payload.department or "General Ward",
                    units_required=payload.units_required,
                )
            )
            urgency = urgency_calculation.urgency.value
        elif payload.urgency is not None:
            urgency = payload.urgency.value
        else:
            urgency = Urgency.medium.value

        now = self.clock()
        document = {
            "id": uuid.uuid4().hex,
            "request_code": f"REQ-{uuid.uuid4().hex[:8].upper()}",
            "hospital_id": payload.hospital_id,
            "blood_bank_id": payload.blood_bank_id,
            "blood_group": payload.blood_group.value,
            "component": payload.component,
            "units_required": payload.units_required,
            "urgency": urgency,
            "patient_info": {
                "age": payload.patient_age,
                "condition": payload.patient_condition,
                "department": payload.department,
            },
            "medical_reason": payload.medical_reason,
            "required_by": payload.required_by,
            "status": RequestStatus.pending.value,
            "is_active": True,
            "is_emergency": urgency == Urgency.critical.value,
            "units_fulfilled": 0,
            "created_at": now,
            "updated_at": now,
        }

        availability = self.get_blood_availability(document["blood_group"])
        stored = self.store.insert_request(self.enrich_request_with_priority(document, availability))

        logger.info(
            "Created blood request %s for %s (%s urgency, %s priority)",
            stored["request_code"],
            stored["blood_group"],
            urgency,
            stored["priority_category"],
        )
        return stored, urgency_calculation

    def get_request(self, request_id: str) -> dict[str, Any]:
        request = self.store.find_request(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        return request

    # -------------------------
    # Read side: queues and stats
    # -------------------------

    def format_priority_for_response(self, request: Optional[Mapping[str, Any]]) -> Optional[PriorityResponse]:
        if not request:
            return None

        details = category_details(request.get("priority_category"))
        return PriorityResponse(
            score=request.get("priority_score") or 0,
            category=request.get("priority_category") or FALLBACK_CATEGORY.value,
            category_details=details,
            breakdown=request.get("priority_details") or {},
            calculated_at=request.get("priority_calculated_at"),
            recalculated_at=request.get("priority_recalculated_at"),
            action_required=details.action_required,
            expected_response_time=details.response_time,
        )

    def _queue_fields(self, request: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "id": request["id"],
            "request_code": request.get("request_code"),
            "blood_group": request.get("blood_group"),
            "units_required": request.get("units_required"),
            "hospital_id": request.get("hospital_id"),
            "blood_bank_id": request.get("blood_bank_id"),
            "urgency": request.get("urgency"),
            "priority": self.format_priority_for_response(request),
            "created_at": request.get("created_at"),
            "status": request.get("status"),
        }

    def get_priority_queue(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 100,
    ) -> list[QueueItem]:
        """Pending requests, best first, shaped for the API."""
        try:
            requests = self.store.get_pending_by_priority(filters)
        except Exception:
            logger.exception("Error getting priority queue")
            return []

        return [QueueItem(**self._queue_fields(r)) for r in requests[:limit]]

    def _organization_summary(self, organization_id: Optional[str], org_type: str) -> Optional[OrganizationSummary]:
        if not organization_id:
            return None
        org = self.store.find_organization(organization_id)
        if org is None:
            return None
        return OrganizationSummary(
            id=org["id"],
            name=org["name"],
            code=org.get("organization_code"),
            type=org_type,
            location=org.get("location"),
        )

    def get_priority_queue_with_org_info(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 100,
    ) -> list[QueueItemWithOrg]:
        """
        Same queue, plus who raised each request and which blood bank has it.
        """
        try:
            requests = self.store.get_pending_by_priority(filters)
        except Exception:
            logger.exception("Error getting priority queue with org info")
            return []

        items: list[QueueItemWithOrg] = []
        for r in requests[:limit]:
            assigned_to = self._organization_summary(r.get("blood_bank_id"), "Blood Bank")
            items.append(
                QueueItemWithOrg(
                    **self._queue_fields(r),
                    raised_from=self._organization_summary(r.get("hospital_id"), "Hospital"),
                    assigned_to=assigned_to or OrganizationSummary(name="Unassigned", type="Pending Assignment"),
                )
            )
        return items

    def get_requests_by_category(self, category: str, limit: int = 50) -> list[QueueItem]:
        active = self.store.find_requests({"is_active": True})
        ranked = sort_by_priority(filter_by_category(active, category))
        return [QueueItem(**self._queue_fields(r)) for r in ranked[:limit]]

    def get_score_distribution(self, bucket_size: int = 20) -> dict[str, int]:
        pending = self.store.find_requests({"status": RequestStatus.pending.value, "is_active": True})
        return get_score_distribution(pending, bucket_size)

    def get_priority_dashboard_stats(self) -> PriorityDashboard:
        pending = self.store.find_requests({"status": RequestStatus.pending.value, "is_active": True})
        stats = get_priority_stats(pending, now=self.clock())

        by_blood_group = {g: 0 for g in valid_blood_groups()}
        for r in pending:
            group = r.get("blood_group")
            if group in by_blood_group:
                by_blood_group[group] += 1

        scores = [r.get("priority_score") or 0 for r in pending]
        totals = DashboardTotals(
            total_requests=stats.total,
            critical=stats.by_category[PriorityCategory.critical.value],
            high=stats.by_category[PriorityCategory.high.value],
            medium=stats.by_category[PriorityCategory.medium.value],
            low=stats.by_category[PriorityCategory.low.value],
            average_score=stats.average_score,
            max_score=max(scores, default=0),
            min_score=min(scores, default=0),
        )

        summary = {}
        for category in PriorityCategory:
            details = category_details(category.value)
            summary[category.value] = CategorySummary(
                count=stats.by_category[category.value],
                color=details.color,
                emoji=details.icon,
                action_required=details.action_required,
            )

        return PriorityDashboard(
            totals=totals,
            by_category=stats.by_category,
            by_urgency=stats.by_urgency,
            by_blood_group=by_blood_group,
            distribution=get_score_distribution(pending),
            category_summary=summary,
        )

    # -------------------------
    # Configuration guard
    # -------------------------

    def validate_configuration(self) -> ConfigValidation:
        """
        Checks the weights still add up to 1.0 (within 0.01).

        Meant for startup and health checks, not for every request.
        """
        total = self.weights.total
        is_valid = abs(total - 1.0) <= WEIGHT_TOLERANCE
        return ConfigValidation(
            valid_urgencies=valid_urgencies(),
            valid_blood_groups=valid_blood_groups(),
            weights=self.weights.as_dict(),
            total_weight=round(total, 4),
            is_valid=is_valid,
            error=None if is_valid else "Weights do not sum to 1.0",
        )
