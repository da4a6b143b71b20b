"""
Category API endpoints.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from product_service.api.deps import get_db_session, get_publisher
from product_service.core.metrics import record_category_operation, track_operation
from product_service.crud.category import category_crud
from product_service.dependencies.auth import get_current_user_id
from product_service.messaging.publisher import EventPublisher
from product_service.schemas.category import CategoryCreate
from product_service.schemas.product import IdResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/categories", tags=["categories"])


@router.post("", response_model=IdResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    publisher: EventPublisher = Depends(get_publisher),
    user_id: int = Depends(get_current_user_id),
) -> IdResponse:
    """
    Create a category and announce it with a ``category_created`` event.

    The event is published after the response is sent.
    """
    with track_operation(record_category_operation, "create"):
        category = category_crud.create(db, category_create=category_data)

    logger.info(f"Category {category.id} created by user {user_id}")
    background_tasks.add_task(publisher.notify_category_created, category.id)
    return IdResponse(id=category.id)
