"""
repositories/transaction_repo.py
--------------------------------
Data access for the ``transactions`` table, including the credit card
statement bookkeeping: bill payments, their linked statement lines and the
expansion state derived from those links.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from errors import BillAlreadyExpanded, BillNotExpanded, PersistenceError
from models import TransactionModel
from utils.logger import get_logger

logger = get_logger(__name__)

BILL_DESCRIPTION_PATTERN = re.compile(r"pagamento.*fatura|fatura.*cartao|cartao.*credito", re.IGNORECASE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class CreditCardSnapshot:
    """What the database knows about one billing cycle."""

    billing_cycle: str
    is_expanded: bool = False
    bill_payment: Optional[TransactionModel] = None
    original_amount: Optional[Decimal] = None
    current_amount: Optional[Decimal] = None
    linked_transactions: List[TransactionModel] = field(default_factory=list)


class TransactionRepository:
    """Repository for the transactions table, scoped by the caller's user id."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── CREATE ────────────────────────────────────────────

    async def add(self, txn: TransactionModel) -> TransactionModel:
        self.session.add(txn)
        await self._commit(f"create transaction for user {txn.user_id}")
        await self.session.refresh(txn)
        return txn

    # ── READ ──────────────────────────────────────────────

    async def get_by_id(self, txn_id: int, user_id: int) -> Optional[TransactionModel]:
        result = await self.session.execute(
            select(TransactionModel).where(TransactionModel.id == txn_id, TransactionModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_by_user(
        self,
        user_id: int,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ttype: Optional[str] = None,
        category_id: Optional[int] = None,
        billing_cycle: Optional[str] = None,
        include_hidden: bool = False,
    ) -> List[TransactionModel]:
        query = select(TransactionModel).where(TransactionModel.user_id == user_id)
        if from_date:
            query = query.where(TransactionModel.date >= from_date)
        if to_date:
            query = query.where(TransactionModel.date <= to_date)
        if ttype:
            query = query.where(TransactionModel.type == ttype)
        if category_id is not None:
            query = query.where(TransactionModel.category_id == category_id)
        if billing_cycle:
            query = query.where(TransactionModel.billing_cycle == billing_cycle)
        if not include_hidden:
            query = query.where(TransactionModel.is_hidden.is_(False))
        query = query.order_by(TransactionModel.date.desc(), TransactionModel.id.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ── UPDATE / DELETE ───────────────────────────────────

    async def save(self, txn: TransactionModel) -> TransactionModel:
        await self._commit(f"update transaction #{txn.id}")
        await self.session.refresh(txn)
        return txn

    async def delete(self, txn: TransactionModel) -> None:
        await self.session.delete(txn)
        await self._commit(f"delete transaction #{txn.id}")
        logger.info(f"Deleted transaction #{txn.id} for user {txn.user_id}")

    # ── CREDIT CARD: LEDGER ───────────────────────────────

    async def find_bill_payment_by_id(self, bill_payment_id: int, user_id: int) -> Optional[TransactionModel]:
        return await self.get_by_id(bill_payment_id, user_id)

    async def is_bill_expanded(self, bill_payment_id: int) -> bool:
        """A bill is expanded while at least one transaction points at it."""
        query = select(
            select(TransactionModel.id).where(TransactionModel.credit_card_payment_id == bill_payment_id).exists()
        )
        result = await self.session.execute(query)
        return bool(result.scalar())

    async def get_linked_transactions(self, bill_payment_id: int) -> List[TransactionModel]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.credit_card_payment_id == bill_payment_id)
            .order_by(TransactionModel.date.desc(), TransactionModel.id.desc())
        )
        return list(result.scalars().all())

    async def find_most_recent_billing_cycle(self, user_id: int) -> Optional[str]:
        result = await self.session.execute(
            select(func.max(TransactionModel.billing_cycle)).where(
                TransactionModel.user_id == user_id,
                TransactionModel.billing_cycle.is_not(None),
                TransactionModel.billing_cycle != "",
            )
        )
        return result.scalar() or None

    async def find_potential_bill_payments(self, user_id: int, start: date, end: date) -> List[TransactionModel]:
        """Unexpanded expenses in the window that look like a card bill payment."""
        linked = aliased(TransactionModel)
        query = (
            select(TransactionModel)
            .where(
                TransactionModel.user_id == user_id,
                TransactionModel.type == "expense",
                TransactionModel.date >= start,
                TransactionModel.date <= end,
                TransactionModel.is_hidden.is_(False),
                TransactionModel.credit_card_payment_id.is_(None),
                ~select(linked.id).where(linked.credit_card_payment_id == TransactionModel.id).exists(),
            )
            .order_by(TransactionModel.date.desc(), TransactionModel.id.desc())
        )
        result = await self.session.execute(query)
        return [
            txn
            for txn in result.scalars().all()
            if txn.is_credit_card_payment or BILL_DESCRIPTION_PATTERN.search(txn.description)
        ]

    async def get_credit_card_status(self, user_id: int, billing_cycle: str) -> CreditCardSnapshot:
        bill = await self._find_bill_for_cycle(user_id, billing_cycle)
        if bill is not None:
            linked = await self.get_linked_transactions(bill.id)
            if bill.original_amount is not None:
                original = abs(bill.original_amount)
            elif linked:
                original = _visible_total(linked)
            else:
                original = None
            return CreditCardSnapshot(
                billing_cycle=billing_cycle,
                is_expanded=bool(linked),
                bill_payment=bill,
                original_amount=original,
                current_amount=bill.amount,
                linked_transactions=linked,
            )

        result = await self.session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.user_id == user_id,
                TransactionModel.billing_cycle == billing_cycle,
                TransactionModel.credit_card_payment_id.is_(None),
                TransactionModel.is_credit_card_payment.is_(False),
                TransactionModel.is_hidden.is_(False),
            )
            .order_by(TransactionModel.date.desc(), TransactionModel.id.desc())
        )
        standalone = list(result.scalars().all())
        if standalone:
            total = _visible_total(standalone)
            return CreditCardSnapshot(
                billing_cycle=billing_cycle,
                original_amount=total,
                current_amount=total,
                linked_transactions=standalone,
            )
        return CreditCardSnapshot(billing_cycle=billing_cycle)

    async def _find_bill_for_cycle(self, user_id: int, billing_cycle: str) -> Optional[TransactionModel]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.user_id == user_id,
                TransactionModel.is_credit_card_payment.is_(True),
                TransactionModel.billing_cycle == billing_cycle,
            )
            .order_by(TransactionModel.date.desc())
            .limit(1)
        )
        bill = result.scalar_one_or_none()
        if bill is not None:
            return bill

        # fall back to the bill any line of this cycle is linked to
        result = await self.session.execute(
            select(TransactionModel.credit_card_payment_id)
            .where(
                TransactionModel.user_id == user_id,
                TransactionModel.billing_cycle == billing_cycle,
                TransactionModel.credit_card_payment_id.is_not(None),
            )
            .limit(1)
        )
        bill_payment_id = result.scalar_one_or_none()
        if bill_payment_id is None:
            return None
        return await self.get_by_id(bill_payment_id, user_id)

    # ── CREDIT CARD: ATOMIC WRITES ────────────────────────

    async def bulk_create_cc_transactions(
        self,
        transactions: List[TransactionModel],
        bill_payment_id: int,
        original_amount: Decimal,
        billing_cycle: str,
    ) -> None:
        """
        Insert statement lines linked to a bill and zero the bill, in one
        database transaction.

        The bill row is locked and its expansion state re-read under the lock,
        so a concurrent import into the same bill fails with
        BillAlreadyExpanded instead of expanding it twice.

        Args:
            transactions: New statement lines, already linked to the bill.
            bill_payment_id: The aggregate bill payment being expanded.
            original_amount: The bill's signed amount before expansion.
            billing_cycle: ``YYYY-MM`` cycle stamped on the bill.

        Raises:
            BillAlreadyExpanded: Another import linked lines to the bill first.
            PersistenceError: The write failed and was rolled back.
        """
        try:
            bill = await self._lock_bill(bill_payment_id)
            if await self.is_bill_expanded(bill_payment_id):
                raise BillAlreadyExpanded()

            now = utcnow()
            self.session.add_all(transactions)
            await self.session.flush()

            bill.original_amount = original_amount
            bill.amount = Decimal("0.00")
            bill.expanded_at = now
            bill.is_credit_card_payment = True
            bill.billing_cycle = billing_cycle
            bill.updated_at = now
            await self.session.flush()
            await self.session.commit()
        except BillAlreadyExpanded:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Rolled back import into bill #{bill_payment_id}: {e}")
            raise PersistenceError("failed to import credit card transactions") from e

        logger.info(f"Expanded bill #{bill_payment_id} into {len(transactions)} transactions ({billing_cycle})")

    async def bulk_create_standalone_cc_transactions(self, transactions: List[TransactionModel]) -> None:
        self.session.add_all(transactions)
        await self._commit(f"standalone import of {len(transactions)} transactions", "failed to import credit card transactions")

    async def collapse_expansion(self, bill_payment_id: int) -> tuple:
        """
        Delete every line linked to the bill and restore the bill's amount,
        in one database transaction.

        Returns:
            ``(restored_amount, deleted_count)``.

        Raises:
            BillNotExpanded: No line is linked to the bill.
            PersistenceError: The write failed and was rolled back.
        """
        try:
            bill = await self._lock_bill(bill_payment_id)
            linked = await self.get_linked_transactions(bill_payment_id)
            if not linked:
                raise BillNotExpanded()

            if bill.original_amount is not None:
                restored = bill.original_amount
            else:
                restored = -_visible_total(linked)

            for txn in linked:
                await self.session.delete(txn)
            await self.session.flush()

            bill.amount = restored
            bill.original_amount = None
            bill.expanded_at = None
            bill.billing_cycle = None
            bill.updated_at = utcnow()
            await self.session.flush()
            await self.session.commit()
        except BillNotExpanded:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Rolled back collapse of bill #{bill_payment_id}: {e}")
            raise PersistenceError("failed to collapse credit card expansion") from e

        logger.info(f"Collapsed bill #{bill_payment_id}: removed {len(linked)} transactions, restored {restored}")
        return restored, len(linked)

    # ── HELPERS ───────────────────────────────────────────

    async def _lock_bill(self, bill_payment_id: int) -> TransactionModel:
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.id == bill_payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _commit(self, action: str, failure: str = "failed to persist changes") -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(failure) from e


def _visible_total(transactions: List[TransactionModel]) -> Decimal:
    return sum((abs(t.amount) for t in transactions if not t.is_hidden), Decimal("0.00"))
