"""
Product API endpoints.
Reads are public; mutations require a bearer token.

Every successful mutation schedules exactly one event notification as a
background task. Background tasks run after the response has been sent, and
only once the CRUD layer has committed, so a publish failure can neither
change the response nor roll back the write.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from product_service.api.deps import get_db_session, get_publisher
from product_service.core.metrics import record_product_operation, track_operation
from product_service.crud.product import product_crud
from product_service.dependencies.auth import get_current_user_id
from product_service.messaging.events import (
    AttributeDescriptor,
    ImageDescriptor,
    ProductSnapshot,
)
from product_service.messaging.publisher import EventPublisher
from product_service.schemas.product import (
    IdResponse,
    MessageResponse,
    ProductAttributeCreate,
    ProductCreate,
    ProductDetail,
    ProductFilter,
    ProductImageCreate,
    ProductListResponse,
    ProductUpdate,
)
from product_service.utils.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    calculate_total_pages,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    filters: ProductFilter = Depends(),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db_session),
) -> ProductListResponse:
    """List active products with optional category, price and text filters."""
    with track_operation(record_product_operation, "list"):
        products, total = product_crud.get_multi(db, filters, page=page, page_size=page_size)

    return ProductListResponse(
        products=products,
        total=total,
        page=page,
        page_size=page_size,
        total_page=calculate_total_pages(total, page_size),
    )


@router.get("/{product_id}", response_model=ProductDetail)
async def get_product(product_id: int, db: Session = Depends(get_db_session)) -> ProductDetail:
    """Return a product with its category name, attributes and images."""
    with track_operation(record_product_operation, "get"):
        return product_crud.get_detail(db, product_id)


@router.post("", response_model=IdResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    publisher: EventPublisher = Depends(get_publisher),
    user_id: int = Depends(get_current_user_id),
) -> IdResponse:
    """Create a product in an existing category."""
    with track_operation(record_product_operation, "create"):
        product = product_crud.create(db, product_create=product_data)

    logger.info(f"Product {product.id} created by user {user_id}")
    background_tasks.add_task(
        publisher.notify_product_created, ProductSnapshot.model_validate(product)
    )
    return IdResponse(id=product.id)


@router.put("/{product_id}", response_model=MessageResponse)
async def update_product(
    product_id: int,
    product_data: ProductUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    publisher: EventPublisher = Depends(get_publisher),
    user_id: int = Depends(get_current_user_id),
) -> MessageResponse:
    """Replace the editable fields of a product."""
    with track_operation(record_product_operation, "update"):
        product = product_crud.update(db, product_id, product_update=product_data)

    background_tasks.add_task(
        publisher.notify_product_updated, ProductSnapshot.model_validate(product)
    )
    return MessageResponse(message="Product updated")


@router.delete("/{product_id}", response_model=MessageResponse)
async def delete_product(
    product_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    publisher: EventPublisher = Depends(get_publisher),
    user_id: int = Depends(get_current_user_id),
) -> MessageResponse:
    """Soft-delete a product."""
    with track_operation(record_product_operation, "delete"):
        product_crud.soft_delete(db, product_id)

    logger.info(f"Product {product_id} deleted by user {user_id}")
    background_tasks.add_task(publisher.notify_product_deleted, product_id)
    return MessageResponse(message="Product deleted")


@router.post(
    "/{product_id}/images", response_model=IdResponse, status_code=status.HTTP_201_CREATED
)
async def add_product_image(
    product_id: int,
    image_data: ProductImageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    publisher: EventPublisher = Depends(get_publisher),
    user_id: int = Depends(get_current_user_id),
) -> IdResponse:
    """Attach an image to a product."""
    with track_operation(record_product_operation, "add_image"):
        image = product_crud.add_image(db, product_id, image_create=image_data)

    background_tasks.add_task(
        publisher.notify_image_added, product_id, ImageDescriptor.model_validate(image)
    )
    return IdResponse(id=image.id)


@router.post(
    "/{product_id}/attributes",
    response_model=IdResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_product_attribute(
    product_id: int,
    attribute_data: ProductAttributeCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    publisher: EventPublisher = Depends(get_publisher),
    user_id: int = Depends(get_current_user_id),
) -> IdResponse:
    """Attach a name/value attribute to a product."""
    with track_operation(record_product_operation, "add_attribute"):
        attribute = product_crud.add_attribute(db, product_id, attribute_create=attribute_data)

    background_tasks.add_task(
        publisher.notify_attribute_added,
        product_id,
        AttributeDescriptor.model_validate(attribute),
    )
    return IdResponse(id=attribute.id)
