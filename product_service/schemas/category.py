"""
Category-related Pydantic schemas.
"""

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    """Schema for category creation."""

    name: str = Field(..., min_length=1, max_length=100, description="Category name")
    description: str = Field(default="", description="Category description")
