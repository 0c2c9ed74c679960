from fastapi import APIRouter, Depends

from app.api.deps import get_handler
from app.schemas.blood import BloodGroup, StockLevel, StockUpdate, StockUpdateResponse
from app.services.priority import get_min_safe_level
from app.services.priority_handler import PriorityRequestHandler

router = APIRouter(prefix="/stock")


@router.get("", response_model=list[StockLevel])
def list_stock(handler: PriorityRequestHandler = Depends(get_handler)) -> list[StockLevel]:
    return [
        StockLevel(blood_group=group, units=units, min_safe_level=get_min_safe_level(group))
        for group, units in handler.get_stock_levels().items()
    ]


@router.put("/{blood_group}", response_model=StockUpdateResponse)
def set_stock(
    blood_group: BloodGroup,
    update: StockUpdate,
    handler: PriorityRequestHandler = Depends(get_handler),
) -> StockUpdateResponse:
    # a stock change moves the availability factor, so pending requests of
    # this group get refreshed right away
    refreshed = handler.update_stock(blood_group.value, update.units)
    return StockUpdateResponse(blood_group=blood_group.value, units=update.units, refreshed=refreshed)
