from fastapi import APIRouter, Depends

from app.api.deps import get_handler
from app.core.config import settings
from app.services.priority_handler import PriorityRequestHandler

router = APIRouter()


@router.get("/health")
def health(handler: PriorityRequestHandler = Depends(get_handler)) -> dict:
    config = handler.validate_configuration()
    return {
        "status": "ok" if config.is_valid else "degraded",
        "app": settings.app_name,
        "environment": settings.environment,
        "priority_config_valid": config.is_valid,
    }
