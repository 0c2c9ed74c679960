"""
blood request routes

intake and per request priority refresh.

creating a request never fails because of scoring: if the priority engine
chokes, the request is still stored with MEDIUM priority.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_handler
from app.core.errors import RequestNotFound
from app.schemas.blood import (
    CreateBloodRequest,
    CreateBloodRequestResponse,
    RecalculationResponse,
    Urgency,
)
from app.services.priority_handler import PriorityRequestHandler

router = APIRouter(prefix="/requests")


@router.post("", response_model=CreateBloodRequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: CreateBloodRequest,
    handler: PriorityRequestHandler = Depends(get_handler),
) -> CreateBloodRequestResponse:
    request, urgency_calculation = handler.create_request(payload)

    if request["urgency"] == Urgency.critical.value:
        message = (
            f"Emergency blood request created with {request['priority_category']} priority. "
            "Waiting for admin approval."
        )
    else:
        message = f"Blood request created successfully with {request['priority_category']} priority."

    return CreateBloodRequestResponse(
        message=message,
        request=request,
        priority=handler.format_priority_for_response(request),
        urgency_calculation=urgency_calculation,
    )


@router.get("/{request_id}")
def get_request(
    request_id: str,
    handler: PriorityRequestHandler = Depends(get_handler),
) -> dict:
    try:
        request = handler.get_request(request_id)
    except RequestNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Request '{request_id}' not found.",
        )

    return {
        "request": request,
        "priority": handler.format_priority_for_response(request),
    }


@router.post("/{request_id}/recalculate", response_model=RecalculationResponse)
def recalculate_request(
    request_id: str,
    handler: PriorityRequestHandler = Depends(get_handler),
) -> RecalculationResponse:
    """
    Refreshes one request against current stock and the current time.

    Useful right after a big stock movement for a single blood group.
    """
    try:
        old_request, result = handler.recalculate_request(request_id)
    except RequestNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Request '{request_id}' not found.",
        )

    if result is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to recalculate priority.",
        )

    updated = handler.store.find_request(request_id)
    return RecalculationResponse(
        old_priority={
            "score": old_request.get("priority_score"),
            "category": old_request.get("priority_category"),
        },
        new_priority=result,
        priority=handler.format_priority_for_response(updated),
    )
