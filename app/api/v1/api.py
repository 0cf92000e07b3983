"""API v1 router configuration.

This module sets up the main API router and includes the advisor sub-router.
"""

from fastapi import (
    APIRouter,
    Request,
)

from app.api.v1.advisor import router as advisor_router
from app.core.config import settings
from app.core.limiter import limiter
from app.core.logging import logger

api_router = APIRouter()

# Include routers
api_router.include_router(advisor_router, prefix="/advisor", tags=["advisor"])


@api_router.get("/health")
@limiter.limit(settings.RATE_LIMIT_ENDPOINTS["health"][0])
async def health_check(request: Request):
    """Health check endpoint.

    Returns:
        dict: Health status information.
    """
    logger.info("health_check_called")
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
