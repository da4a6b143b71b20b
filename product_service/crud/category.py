"""
Category CRUD operations.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from product_service.core.exceptions import PersistenceError
from product_service.models.category import Category
from product_service.schemas.category import CategoryCreate

logger = logging.getLogger(__name__)


class CategoryCRUD:
    """CRUD operations for Category model."""

    def create(self, db: Session, category_create: CategoryCreate) -> Category:
        """
        Create a new category and commit it.

        Raises:
            PersistenceError: If the insert fails (the session is rolled back)
        """
        db_category = Category(
            name=category_create.name, description=category_create.description
        )
        try:
            db.add(db_category)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create category: {e}")
            raise PersistenceError("create category") from e
        db.refresh(db_category)
        return db_category

    def exists(self, db: Session, category_id: int) -> bool:
        return db.query(Category.id).filter(Category.id == category_id).first() is not None


category_crud = CategoryCRUD()
