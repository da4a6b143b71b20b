# Database models
from product_service.models.category import Category
from product_service.models.product import Product, ProductAttribute, ProductImage

__all__ = ["Category", "Product", "ProductImage", "ProductAttribute"]
