"""
api router

this file is basically the "table of contents" for all endpoints.

why we do this:
- main.py stays clean (just creates the app and includes this router)
- routes are grouped by feature (health, requests, priority, stock, demo)
"""

from fastapi import APIRouter

from app.api.routes.health import router as health_router
from app.api.routes.requests import router as requests_router
from app.api.routes.priority import router as priority_router
from app.api.routes.stock import router as stock_router
from app.api.routes.demo import router as demo_router

api_router = APIRouter()

# health checks and sanity endpoints
api_router.include_router(health_router, tags=["health"])

# hospital blood requests (intake + per request recalculation)
api_router.include_router(requests_router, tags=["requests"])

# ranked queue, dashboards, batch recalculation, urgency preview
api_router.include_router(priority_router, tags=["priority"])

# stock levels feed the availability factor
api_router.include_router(stock_router, tags=["stock"])

# demo endpoints exist to make the project easy to try in swagger
api_router.include_router(demo_router, tags=["demo"])
