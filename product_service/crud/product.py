"""
Product CRUD operations.
Handles all database operations related to products, their images and
attributes. Every write commits before returning, so callers may treat a
returned object as durably stored.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from product_service.core.exceptions import (
    CategoryNotFoundError,
    PersistenceError,
    ProductNotFoundError,
)
from product_service.crud.category import category_crud
from product_service.models.category import Category
from product_service.models.product import Product, ProductAttribute, ProductImage
from product_service.schemas.product import (
    ProductAttributeCreate,
    ProductCreate,
    ProductDetail,
    ProductFilter,
    ProductImageCreate,
    ProductUpdate,
)
from product_service.utils.pagination import page_offset

logger = logging.getLogger(__name__)


def to_detail(product: Product) -> ProductDetail:
    """Build the API representation of a product, including its category name."""
    detail = ProductDetail.model_validate(product)
    if product.category is not None:
        detail.category_name = product.category.name
    return detail


class ProductCRUD:
    """CRUD operations for Product model."""

    def _commit(self, db: Session, operation: str) -> None:
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise PersistenceError(operation) from e

    def _active(self, db: Session):
        return db.query(Product).filter(Product.deleted_at.is_(None))

    def get(self, db: Session, product_id: int) -> Optional[Product]:
        """
        Get a product that has not been soft-deleted.

        Args:
            db: Database session
            product_id: Product ID to retrieve

        Returns:
            Optional[Product]: Product object if found, None otherwise
        """
        return self._active(db).filter(Product.id == product_id).first()

    def get_or_404(self, db: Session, product_id: int) -> Product:
        product = self.get(db, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def get_detail(self, db: Session, product_id: int) -> ProductDetail:
        """
        Get a product with its category name, attributes and images.

        Raises:
            ProductNotFoundError: If the product does not exist or was deleted
        """
        product = (
            self._active(db)
            .options(
                joinedload(Product.category),
                selectinload(Product.attributes),
                selectinload(Product.images),
            )
            .filter(Product.id == product_id)
            .first()
        )
        if product is None:
            raise ProductNotFoundError(product_id)
        return to_detail(product)

    def get_multi(
        self, db: Session, filters: ProductFilter, page: int = 1, page_size: int = 10
    ) -> Tuple[List[ProductDetail], int]:
        """
        List active products matching the filters.

        Args:
            db: Database session
            filters: Category, price range and free-text search filters
            page: 1-based page number
            page_size: Number of products per page

        Returns:
            Tuple[List[ProductDetail], int]: The page of products and the total match count
        """
        query = self._active(db).join(Category, Product.category_id == Category.id)

        if filters.category_id:
            query = query.filter(Product.category_id == filters.category_id)
        if filters.min_price:
            query = query.filter(Product.price >= filters.min_price)
        if filters.max_price:
            query = query.filter(Product.price <= filters.max_price)
        if filters.search:
            term = f"%{filters.search}%"
            query = query.filter(
                or_(
                    Product.name.ilike(term),
                    Product.description.ilike(term),
                    Category.name.ilike(term),
                )
            )

        total = query.count()
        products = (
            query.options(joinedload(Product.category))
            .order_by(Product.id)
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return [to_detail(p) for p in products], total

    def create(self, db: Session, product_create: ProductCreate) -> Product:
        """
        Create a new product in an existing category.

        Raises:
            CategoryNotFoundError: If the category does not exist
            PersistenceError: If the insert fails (the session is rolled back)
        """
        if not category_crud.exists(db, product_create.category_id):
            raise CategoryNotFoundError(product_create.category_id)

        db_product = Product(**product_create.model_dump())
        db.add(db_product)
        self._commit(db, "create product")
        db.refresh(db_product)
        return db_product

    def update(self, db: Session, product_id: int, product_update: ProductUpdate) -> Product:
        """
        Replace the editable fields of a product.

        Raises:
            ProductNotFoundError: If the product does not exist or was deleted
            CategoryNotFoundError: If the new category does not exist
            PersistenceError: If the update fails (the session is rolled back)
        """
        db_product = self.get_or_404(db, product_id)
        if not category_crud.exists(db, product_update.category_id):
            raise CategoryNotFoundError(product_update.category_id)

        for field, value in product_update.model_dump().items():
            setattr(db_product, field, value)
        db_product.updated_at = datetime.now(timezone.utc)
        self._commit(db, "update product")
        db.refresh(db_product)
        return db_product

    def soft_delete(self, db: Session, product_id: int) -> None:
        """
        Mark a product as deleted.

        Raises:
            ProductNotFoundError: If the product does not exist or was already deleted
        """
        db_product = self.get_or_404(db, product_id)
        db_product.deleted_at = datetime.now(timezone.utc)
        self._commit(db, "delete product")

    def add_image(
        self, db: Session, product_id: int, image_create: ProductImageCreate
    ) -> ProductImage:
        """Attach an image to an active product."""
        self.get_or_404(db, product_id)
        db_image = ProductImage(product_id=product_id, **image_create.model_dump())
        db.add(db_image)
        self._commit(db, "add image")
        db.refresh(db_image)
        return db_image

    def add_attribute(
        self, db: Session, product_id: int, attribute_create: ProductAttributeCreate
    ) -> ProductAttribute:
        """Attach a name/value attribute to an active product."""
        self.get_or_404(db, product_id)
        db_attribute = ProductAttribute(product_id=product_id, **attribute_create.model_dump())
        db.add(db_attribute)
        self._commit(db, "add attribute")
        db.refresh(db_attribute)
        return db_attribute


product_crud = ProductCRUD()
