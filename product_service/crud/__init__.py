# Database CRUD operations
from .category import category_crud, CategoryCRUD
from .product import product_crud, ProductCRUD

__all__ = ["category_crud", "CategoryCRUD", "product_crud", "ProductCRUD"]
