# Request/response schemas
from product_service.schemas.category import CategoryCreate
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

__all__ = [
    "CategoryCreate",
    "IdResponse",
    "MessageResponse",
    "ProductAttributeCreate",
    "ProductCreate",
    "ProductDetail",
    "ProductFilter",
    "ProductImageCreate",
    "ProductListResponse",
    "ProductUpdate",
]
