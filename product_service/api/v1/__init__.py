# API routes
from fastapi import APIRouter

from .categories import router as categories_router
from .products import router as products_router

# Catalog routes live under /api
api_v1_router = APIRouter(prefix="/api")

api_v1_router.include_router(categories_router)
api_v1_router.include_router(products_router)

__all__ = ["api_v1_router"]
