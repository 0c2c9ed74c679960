"""
priority routes

read side of the priority engine (queue, categories, dashboard) plus the two
maintenance operations: batch recalculation and the configuration check.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_handler
from app.core.config import settings
from app.schemas.blood import (
    BatchRecalculationResult,
    BloodGroup,
    ConfigValidation,
    PriorityCategory,
    PriorityDashboard,
    QueueItem,
    QueueItemWithOrg,
    UrgencyInput,
    UrgencyResult,
)
from app.services.priority_handler import PriorityRequestHandler
from app.services.urgency import calculate_urgency

router = APIRouter()


@router.get("/priority/queue", response_model=Union[list[QueueItemWithOrg], list[QueueItem]])
def priority_queue(
    limit: int = Query(default=settings.queue_default_limit, ge=1, le=1000),
    blood_group: Optional[BloodGroup] = None,
    hospital_id: Optional[str] = None,
    blood_bank_id: Optional[str] = None,
    with_org_info: bool = False,
    handler: PriorityRequestHandler = Depends(get_handler),
):
    """
    Pending requests, highest priority first, oldest first among equals.

    Scoping by hospital or blood bank is done with the query params; who is
    allowed to see what is the auth layer's job, not ours.
    """
    filters = {
        "blood_group": blood_group.value if blood_group else None,
        "hospital_id": hospital_id,
        "blood_bank_id": blood_bank_id,
    }

    if with_org_info:
        return handler.get_priority_queue_with_org_info(filters, limit)
    return handler.get_priority_queue(filters, limit)


@router.get("/priority/category/{category}", response_model=list[QueueItem])
def requests_by_category(
    category: str,
    limit: int = Query(default=50, ge=1, le=1000),
    handler: PriorityRequestHandler = Depends(get_handler),
) -> list[QueueItem]:
    try:
        parsed = PriorityCategory(category.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Valid priority category required: CRITICAL, HIGH, MEDIUM, or LOW",
        )

    return handler.get_requests_by_category(parsed.value, limit)


@router.get("/priority/dashboard", response_model=PriorityDashboard)
def priority_dashboard(handler: PriorityRequestHandler = Depends(get_handler)) -> PriorityDashboard:
    return handler.get_priority_dashboard_stats()


@router.get("/priority/distribution")
def score_distribution(
    bucket_size: int = Query(default=20, ge=1, le=255),
    handler: PriorityRequestHandler = Depends(get_handler),
) -> dict[str, int]:
    return handler.get_score_distribution(bucket_size)


@router.post("/priority/recalculate-all", response_model=BatchRecalculationResult)
def recalculate_all(handler: PriorityRequestHandler = Depends(get_handler)) -> BatchRecalculationResult:
    """
    Refreshes every pending request.

    Meant for a scheduler (cron, k8s job) since time pressure keeps growing
    while a request waits.
    """
    return handler.batch_recalculate_priorities()


@router.get("/priority/config", response_model=ConfigValidation)
def priority_config(handler: PriorityRequestHandler = Depends(get_handler)) -> ConfigValidation:
    return handler.validate_configuration()


@router.post("/urgency/calculate", response_model=UrgencyResult)
def urgency_preview(data: UrgencyInput) -> UrgencyResult:
    """
    Runs the intake urgency classifier without creating anything.
    Handy for the request form to preview the label before submitting.
    """
    return calculate_urgency(data)
