"""
services/category_service.py
----------------------------
Business logic for a user's income and expense categories.
"""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from errors import CategoryNameExists, CategoryNotFound
from models import CategoryModel
from repositories.category_repo import CategoryRepository
from schemas import CategoryIn, CategoryUpdate
from utils.logger import get_logger

logger = get_logger(__name__)


class CategoryService:
    """Manages categories; names are unique per user."""

    def __init__(self, session: AsyncSession):
        self.category_repo = CategoryRepository(session)

    async def create(self, user_id: int, payload: CategoryIn) -> CategoryModel:
        if await self.category_repo.exists_by_name(user_id, payload.name):
            raise CategoryNameExists()
        category = CategoryModel(
            user_id=user_id,
            name=payload.name,
            type=payload.type,
            color=payload.color.upper(),
            icon=payload.icon,
        )
        category = await self.category_repo.add(category)
        logger.info(f"Created category #{category.id} {category.name!r} for user {user_id}")
        return category

    async def list_all(self, user_id: int, ctype: Optional[str] = None) -> List[CategoryModel]:
        return await self.category_repo.list_by_user(user_id, ctype)

    async def get(self, user_id: int, category_id: int) -> CategoryModel:
        category = await self.category_repo.get_by_id(category_id, user_id)
        if category is None:
            raise CategoryNotFound()
        return category

    async def update(self, user_id: int, category_id: int, payload: CategoryUpdate) -> CategoryModel:
        category = await self.get(user_id, category_id)
        if payload.name is not None and payload.name != category.name:
            if await self.category_repo.exists_by_name(user_id, payload.name, exclude_id=category.id):
                raise CategoryNameExists()
            category.name = payload.name
        if payload.color is not None:
            category.color = payload.color.upper()
        if payload.icon is not None:
            category.icon = payload.icon
        return await self.category_repo.save(category)

    async def delete(self, user_id: int, category_id: int) -> None:
        category = await self.get(user_id, category_id)
        await self.category_repo.delete(category)
