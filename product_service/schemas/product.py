"""
Product-related Pydantic schemas.
Defines the structure for product data validation in requests and responses.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductBase(BaseModel):
    """Base product schema with common fields."""

    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    description: str = Field(..., description="Product description")
    price: float = Field(..., ge=0, description="Unit price")
    stock: int = Field(..., ge=0, description="Units in stock")
    category_id: int = Field(..., gt=0, description="Owning category")
    sku: str = Field(default="", max_length=100, description="Stock keeping unit")
    image_url: str = Field(default="", max_length=500, description="Main image URL")


class ProductCreate(ProductBase):
    """Schema for product creation."""


class ProductUpdate(ProductBase):
    """Schema for product updates (full replacement of editable fields)."""


class ProductImageCreate(BaseModel):
    """Schema for attaching an image to a product."""

    image_url: str = Field(..., min_length=1, max_length=500)
    is_primary: bool = Field(default=False)


class ProductAttributeCreate(BaseModel):
    """Schema for attaching a name/value attribute to a product."""

    name: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., min_length=1, max_length=255)


class ProductImageResponse(BaseModel):
    id: int
    image_url: str
    is_primary: bool

    model_config = ConfigDict(from_attributes=True)


class ProductAttributeResponse(BaseModel):
    id: int
    name: str
    value: str

    model_config = ConfigDict(from_attributes=True)


class ProductDetail(ProductBase):
    """Schema for product data in API responses."""

    id: int = Field(..., description="Unique product identifier")
    category_name: str = Field(default="", description="Name of the owning category")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    attributes: List[ProductAttributeResponse] = Field(default_factory=list)
    images: List[ProductImageResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class ProductFilter(BaseModel):
    """Query filters for product listing."""

    category_id: Optional[int] = Field(default=None, gt=0)
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    search: Optional[str] = Field(default=None, max_length=255)


class ProductListResponse(BaseModel):
    """Schema for a page of products."""

    products: List[ProductDetail] = Field(..., description="Products on this page")
    total: int = Field(..., description="Total number of matching products")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Number of products per page")
    total_page: int = Field(..., description="Total number of pages")


class IdResponse(BaseModel):
    """Identifier of a newly created resource."""

    id: int


class MessageResponse(BaseModel):
    message: str
