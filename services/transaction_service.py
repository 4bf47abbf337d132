"""
services/transaction_service.py
-------------------------------
Business logic for manually recorded transactions.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from errors import CategoryNotFound, DescriptionTooLong, NotesTooLong, TransactionNotFound
from models import TransactionModel
from repositories.category_repo import CategoryRepository
from repositories.category_rule_repo import CategoryRuleRepository
from repositories.transaction_repo import TransactionRepository
from schemas import TransactionIn, TransactionUpdate
from services.pattern_matcher import match_category
from utils.logger import get_logger

logger = get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 255
MAX_NOTES_LENGTH = 1000


def _check_lengths(description: Optional[str], notes: Optional[str]) -> None:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise DescriptionTooLong()
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise NotesTooLong()


class TransactionService:
    """Records, lists and edits a user's transactions."""

    def __init__(self, session: AsyncSession):
        self.txn_repo = TransactionRepository(session)
        self.category_repo = CategoryRepository(session)
        self.rule_repo = CategoryRuleRepository(session)

    async def create(self, user_id: int, payload: TransactionIn) -> TransactionModel:
        """
        Record a transaction. Without an explicit category the user's active
        rules pick one from the description.
        """
        _check_lengths(payload.description, payload.notes)

        category_id = payload.category_id
        if category_id is not None:
            await self._require_category(user_id, category_id)
        else:
            rules = await self.rule_repo.find_active_by_owner(user_id)
            category_id = match_category(payload.description, rules)

        txn = TransactionModel(
            user_id=user_id,
            type=payload.type,
            description=payload.description,
            amount=payload.amount,
            date=payload.date,
            category_id=category_id,
            notes=payload.notes,
        )
        txn = await self.txn_repo.add(txn)
        logger.info(f"Created transaction #{txn.id} for user {user_id}")
        return txn

    async def list_all(
        self,
        user_id: int,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ttype: Optional[str] = None,
        category_id: Optional[int] = None,
        billing_cycle: Optional[str] = None,
        include_hidden: bool = False,
    ) -> List[TransactionModel]:
        return await self.txn_repo.list_by_user(
            user_id,
            from_date=from_date,
            to_date=to_date,
            ttype=ttype,
            category_id=category_id,
            billing_cycle=billing_cycle,
            include_hidden=include_hidden,
        )

    async def get(self, user_id: int, txn_id: int) -> TransactionModel:
        txn = await self.txn_repo.get_by_id(txn_id, user_id)
        if txn is None:
            raise TransactionNotFound()
        return txn

    async def update(self, user_id: int, txn_id: int, payload: TransactionUpdate) -> TransactionModel:
        txn = await self.get(user_id, txn_id)
        _check_lengths(payload.description, payload.notes)

        changes = payload.model_dump(exclude_unset=True)
        if changes.get("category_id") is not None:
            await self._require_category(user_id, changes["category_id"])
        for field, value in changes.items():
            if field in ("type", "description", "amount", "date") and value is None:
                continue
            setattr(txn, field, value)
        return await self.txn_repo.save(txn)

    async def delete(self, user_id: int, txn_id: int) -> None:
        txn = await self.get(user_id, txn_id)
        await self.txn_repo.delete(txn)

    async def _require_category(self, user_id: int, category_id: int) -> None:
        if await self.category_repo.get_by_id(category_id, user_id) is None:
            raise CategoryNotFound()
