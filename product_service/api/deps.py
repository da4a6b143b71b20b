"""
Shared dependencies for API endpoints.
Provides database sessions and the event publisher.
"""

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from product_service.core.database import get_db
from product_service.messaging.publisher import EventPublisher
from product_service.messaging.service import MessagingService


def get_db_session() -> Generator[Session, None, None]:
    """
    Get database session dependency.

    Yields:
        Session: Database session
    """
    yield from get_db()


def get_messaging(request: Request) -> MessagingService:
    """Return the messaging service built by the application lifespan."""
    return request.app.state.messaging


def get_publisher(request: Request) -> EventPublisher:
    """Return the shared event publisher (disabled when messaging is down)."""
    return get_messaging(request).publisher
