"""
repositories/category_rule_repo.py
----------------------------------
Data access for the ``category_rules`` table.
Rules are always returned in evaluation order: highest priority first,
oldest rule first among equal priorities.
"""

from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import PersistenceError
from models import CategoryRuleModel, TransactionModel
from services.pattern_matcher import compile_pattern
from utils.logger import get_logger

logger = get_logger(__name__)

_EVALUATION_ORDER = (CategoryRuleModel.priority.desc(), CategoryRuleModel.id.asc())


class CategoryRuleRepository:
    """Repository for the category_rules table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── CREATE ────────────────────────────────────────────

    async def add(self, rule: CategoryRuleModel) -> CategoryRuleModel:
        self.session.add(rule)
        await self._commit(f"create rule {rule.pattern!r}")
        await self.session.refresh(rule)
        return rule

    # ── READ ──────────────────────────────────────────────

    async def get_by_id(self, rule_id: int, user_id: int) -> Optional[CategoryRuleModel]:
        result = await self.session.execute(
            select(CategoryRuleModel).where(CategoryRuleModel.id == rule_id, CategoryRuleModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def find_by_owner(self, user_id: int) -> List[CategoryRuleModel]:
        result = await self.session.execute(
            select(CategoryRuleModel).where(CategoryRuleModel.user_id == user_id).order_by(*_EVALUATION_ORDER)
        )
        return list(result.scalars().all())

    async def find_active_by_owner(self, user_id: int) -> List[CategoryRuleModel]:
        result = await self.session.execute(
            select(CategoryRuleModel)
            .where(CategoryRuleModel.user_id == user_id, CategoryRuleModel.is_active.is_(True))
            .order_by(*_EVALUATION_ORDER)
        )
        return list(result.scalars().all())

    async def exists_by_pattern(self, user_id: int, pattern: str, exclude_id: Optional[int] = None) -> bool:
        query = select(CategoryRuleModel.id).where(
            CategoryRuleModel.user_id == user_id, CategoryRuleModel.pattern == pattern
        )
        if exclude_id is not None:
            query = query.where(CategoryRuleModel.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def get_max_priority(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(CategoryRuleModel.priority), 0)).where(CategoryRuleModel.user_id == user_id)
        )
        return int(result.scalar())

    async def find_matching_transactions(
        self, user_id: int, pattern: str, limit: int
    ) -> Tuple[int, List[TransactionModel]]:
        """
        Find the owner's transactions whose description matches ``pattern``.

        Matching happens in Python so it behaves the same as auto-categorization
        on every database backend.

        Returns:
            ``(total_match_count, newest_matches[:limit])``.
        """
        compiled = compile_pattern(pattern)
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.user_id == user_id)
            .order_by(TransactionModel.date.desc(), TransactionModel.id.desc())
        )
        matches = [t for t in result.scalars().all() if compiled is not None and compiled.search(t.description)]
        return len(matches), matches[:limit]

    # ── UPDATE / DELETE ───────────────────────────────────

    async def save(self, rule: CategoryRuleModel) -> CategoryRuleModel:
        await self._commit(f"update rule #{rule.id}")
        await self.session.refresh(rule)
        return rule

    async def update_priorities(self, user_id: int, priorities: dict) -> List[CategoryRuleModel]:
        """Apply ``{rule_id: priority}`` in one database transaction; unknown ids are ignored."""
        result = await self.session.execute(
            select(CategoryRuleModel).where(
                CategoryRuleModel.user_id == user_id, CategoryRuleModel.id.in_(list(priorities))
            )
        )
        for rule in result.scalars().all():
            rule.priority = priorities[rule.id]
        await self._commit(f"reorder rules for user {user_id}")
        return await self.find_by_owner(user_id)

    async def delete(self, rule: CategoryRuleModel) -> None:
        await self.session.delete(rule)
        await self._commit(f"delete rule #{rule.id}")
        logger.info(f"Deleted category rule #{rule.id} for user {rule.user_id}")

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError() from e
