"""
app entrypoint

creates the FastAPI app and plugs in the router.
on startup we check the priority weights once, because a drifted weight would
quietly skew every score in the queue.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.deps import get_handler
from app.api.router import api_router
from app.core.config import settings
from app.core.errors import PriorityConfigurationError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s (%s)...", settings.app_name, settings.environment)

    config = get_handler().validate_configuration()
    if not config.is_valid:
        logger.error("Priority configuration invalid: %s (total weight %s)", config.error, config.total_weight)
        raise PriorityConfigurationError(config.error)

    logger.info("Priority weights OK: %s", config.weights)
    yield
    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(
    title=f"{settings.app_name} API",
    description="Blood request intake and priority ranking for hospitals and blood banks",
    version="1.0.0",
    lifespan=lifespan,
)
app.include_router(api_router)
