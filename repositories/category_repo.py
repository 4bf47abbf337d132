"""
repositories/category_repo.py
-----------------------------
Data access for the ``categories`` table.
"""

from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import PersistenceError
from models import CategoryModel, CategoryRuleModel, TransactionModel
from utils.logger import get_logger

logger = get_logger(__name__)


class CategoryRepository:
    """Repository for CRUD operations on the categories table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── CREATE ────────────────────────────────────────────

    async def add(self, category: CategoryModel) -> CategoryModel:
        self.session.add(category)
        await self._commit(f"create category {category.name!r}")
        await self.session.refresh(category)
        return category

    # ── READ ──────────────────────────────────────────────

    async def find_by_id(self, category_id: int) -> Optional[CategoryModel]:
        result = await self.session.execute(select(CategoryModel).where(CategoryModel.id == category_id))
        return result.scalar_one_or_none()

    async def get_by_id(self, category_id: int, user_id: int) -> Optional[CategoryModel]:
        result = await self.session.execute(
            select(CategoryModel).where(CategoryModel.id == category_id, CategoryModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: int, ctype: Optional[str] = None) -> List[CategoryModel]:
        query = select(CategoryModel).where(CategoryModel.user_id == user_id)
        if ctype:
            query = query.where(CategoryModel.type == ctype)
        result = await self.session.execute(query.order_by(CategoryModel.name))
        return list(result.scalars().all())

    async def exists_by_name(self, user_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
        query = select(CategoryModel.id).where(CategoryModel.user_id == user_id, CategoryModel.name == name)
        if exclude_id is not None:
            query = query.where(CategoryModel.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    # ── UPDATE / DELETE ───────────────────────────────────

    async def save(self, category: CategoryModel) -> CategoryModel:
        await self._commit(f"update category #{category.id}")
        await self.session.refresh(category)
        return category

    async def delete(self, category: CategoryModel) -> None:
        """Delete a category together with its rules; its transactions become uncategorized."""
        try:
            await self.session.execute(
                update(TransactionModel)
                .where(TransactionModel.category_id == category.id)
                .values(category_id=None)
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(
                delete(CategoryRuleModel)
                .where(CategoryRuleModel.category_id == category.id)
                .execution_options(synchronize_session=False)
            )
            await self.session.delete(category)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to delete category #{category.id}: {e}")
            raise PersistenceError("failed to delete category") from e
        logger.info(f"Deleted category #{category.id} for user {category.user_id}")

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError() from e
