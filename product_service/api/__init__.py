# API routes and endpoints
from fastapi import APIRouter

from .deps import get_db_session, get_publisher
from .health import router as health_router
from .v1 import api_v1_router

# Create main API router
api_router = APIRouter()

# Include health check and metrics routes
api_router.include_router(health_router)

# Include catalog routes
api_router.include_router(api_v1_router)

__all__ = ["get_db_session", "get_publisher", "api_router", "health_router", "api_v1_router"]
