"""
services/category_rule_service.py
---------------------------------
Business logic for auto-categorization rules.

A rule maps a case-insensitive regular expression over transaction
descriptions to one of the owner's categories. Rules are evaluated from the
highest priority down and the first match wins, so new rules default to
the top of the list.
"""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from errors import CategoryNotFound, CategoryRuleNotFound, InvalidPattern, PatternTooLong, RulePatternExists
from models import CategoryRuleModel
from repositories.category_repo import CategoryRepository
from repositories.category_rule_repo import CategoryRuleRepository
from schemas import CategoryRuleIn, CategoryRuleUpdate, MatchingTransaction, PatternTestOut, RulePriority
from services.pattern_matcher import is_valid_pattern
from utils.logger import get_logger

logger = get_logger(__name__)

MAX_PATTERN_LENGTH = 255
DEFAULT_TEST_LIMIT = 10
MAX_TEST_LIMIT = 100


def validate_pattern(pattern: Optional[str]) -> str:
    """Return the trimmed pattern, or raise if it is empty, too long or not a valid regex."""
    pattern = (pattern or "").strip()
    if not pattern:
        raise InvalidPattern("pattern is required")
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise PatternTooLong()
    if not is_valid_pattern(pattern):
        raise InvalidPattern()
    return pattern


class CategoryRuleService:
    def __init__(self, session: AsyncSession):
        self.rule_repo = CategoryRuleRepository(session)
        self.category_repo = CategoryRepository(session)

    async def create(self, user_id: int, payload: CategoryRuleIn) -> CategoryRuleModel:
        pattern = validate_pattern(payload.pattern)
        await self._require_category(user_id, payload.category_id)
        if await self.rule_repo.exists_by_pattern(user_id, pattern):
            raise RulePatternExists()

        priority = payload.priority
        if priority is None:
            priority = await self.rule_repo.get_max_priority(user_id) + 1

        rule = CategoryRuleModel(
            user_id=user_id,
            pattern=pattern,
            category_id=payload.category_id,
            priority=priority,
            is_active=True,
        )
        rule = await self.rule_repo.add(rule)
        logger.info(f"Created category rule #{rule.id} {rule.pattern!r} (priority {rule.priority}) for user {user_id}")
        return rule

    async def list_all(self, user_id: int) -> List[CategoryRuleModel]:
        return await self.rule_repo.find_by_owner(user_id)

    async def get(self, user_id: int, rule_id: int) -> CategoryRuleModel:
        rule = await self.rule_repo.get_by_id(rule_id, user_id)
        if rule is None:
            raise CategoryRuleNotFound()
        return rule

    async def update(self, user_id: int, rule_id: int, payload: CategoryRuleUpdate) -> CategoryRuleModel:
        rule = await self.get(user_id, rule_id)

        if payload.pattern is not None:
            pattern = validate_pattern(payload.pattern)
            if pattern != rule.pattern and await self.rule_repo.exists_by_pattern(
                user_id, pattern, exclude_id=rule.id
            ):
                raise RulePatternExists()
            rule.pattern = pattern
        if payload.category_id is not None:
            await self._require_category(user_id, payload.category_id)
            rule.category_id = payload.category_id
        if payload.priority is not None:
            rule.priority = payload.priority
        if payload.is_active is not None:
            rule.is_active = payload.is_active

        rule = await self.rule_repo.save(rule)
        logger.info(f"Updated category rule #{rule.id} for user {user_id}")
        return rule

    async def delete(self, user_id: int, rule_id: int) -> None:
        rule = await self.get(user_id, rule_id)
        await self.rule_repo.delete(rule)

    async def reorder(self, user_id: int, priorities: List[RulePriority]) -> List[CategoryRuleModel]:
        """Set several priorities at once; every id must belong to the user."""
        owned = {rule.id for rule in await self.rule_repo.find_by_owner(user_id)}
        requested = {item.id: item.priority for item in priorities}
        unknown = set(requested) - owned
        if unknown:
            raise CategoryRuleNotFound(f"category rule not found: {sorted(unknown)[0]}")
        rules = await self.rule_repo.update_priorities(user_id, requested)
        logger.info(f"Reordered {len(requested)} category rules for user {user_id}")
        return rules

    async def test_pattern(self, user_id: int, pattern: str, limit: Optional[int] = None) -> PatternTestOut:
        """Dry run: which of the user's transactions would this pattern catch?"""
        pattern = validate_pattern(pattern)
        if limit is None or limit < 1:
            limit = DEFAULT_TEST_LIMIT
        limit = min(limit, MAX_TEST_LIMIT)

        count, matches = await self.rule_repo.find_matching_transactions(user_id, pattern, limit)
        return PatternTestOut(
            match_count=count,
            matching_transactions=[
                MatchingTransaction(id=t.id, description=t.description, amount=t.amount, date=t.date)
                for t in matches
            ],
        )

    async def _require_category(self, user_id: int, category_id: int) -> None:
        if await self.category_repo.get_by_id(category_id, user_id) is None:
            raise CategoryNotFound()
