"""
Health check API endpoints.
Monitors database and messaging health.
"""

import datetime

from fastapi import APIRouter, Depends, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.orm import Session

from product_service.api.deps import get_db_session, get_messaging
from product_service.messaging.service import MessagingService

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(
    db: Session = Depends(get_db_session),
    messaging: MessagingService = Depends(get_messaging),
) -> dict:
    """
    Health check endpoint.

    Messaging being disabled degrades the report but never fails it: the
    catalog keeps serving without events.

    Returns:
        dict: Health status with keys: status, timestamp, services (database, messaging)
    """
    health_status = {
        "status": "ok",
        "timestamp": datetime.datetime.now(datetime.timezone.utc),
        "services": {"database": "unknown", "messaging": messaging.status},
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except Exception:
        health_status["services"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    if messaging.status != "enabled":
        health_status["status"] = "degraded"
    else:
        health_status["services"]["queue_depth"] = await messaging.queue_depth()

    return health_status


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus exposition of all registered metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
