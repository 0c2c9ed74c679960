"""
shared route dependencies

routes ask for a handler through Depends(get_handler) instead of building one,
so tests can swap in a handler with a frozen clock via app.dependency_overrides.
"""

from app.core.config import settings
from app.core.store import get_store
from app.services.priority_handler import PriorityRequestHandler


def get_handler() -> PriorityRequestHandler:
    return PriorityRequestHandler(
        store=get_store(),
        weights=settings.priority_weights(),
        max_workers=settings.batch_max_workers,
    )
