"""
services/credit_card_service.py
-------------------------------
Credit card statement import and bill reconciliation.

A statement can be imported standalone, or against a previously recorded
aggregate bill payment ("Pagamento de fatura"). In the second case the bill
is expanded: the statement lines are linked to it and its amount is zeroed so
reports do not count the same spending twice. Collapsing undoes that.

Workflow:
    1. preview_import   -> totals and candidate bill payments, nothing written.
    2. import_transactions -> lines persisted (and the bill zeroed) atomically.
    3. get_status       -> expansion snapshot for a billing cycle.
    4. collapse         -> linked lines deleted, bill amount restored.
"""

import re
from calendar import monthrange
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import (
    BillAlreadyExpanded,
    BillPaymentNotFound,
    EmptyStatementLines,
    InvalidBillingCycle,
    PersistenceError,
)
from models import TransactionModel
from repositories.category_repo import CategoryRepository
from repositories.category_rule_repo import CategoryRuleRepository
from repositories.transaction_repo import TransactionRepository
from schemas import (
    BillMatch,
    CollapseResult,
    CreditCardStatus,
    CreditCardTransactionSummary,
    ImportedTransaction,
    ImportPreviewOut,
    ImportResult,
    StatementLine,
)
from services.pattern_matcher import find_matching_rule
from utils.logger import get_logger

logger = get_logger(__name__)

BILLING_CYCLE_PATTERN = re.compile(r"[0-9]{4}-(0[1-9]|1[0-2])")
PAYMENT_RECEIVED_PATTERN = re.compile(r"pagamento\s+recebido", re.IGNORECASE)

AMOUNT_TOLERANCE_PERCENT = 0.01
AMOUNT_TOLERANCE_ABSOLUTE = 10.0
# statement dates and bank payment dates are usually 5-7 days apart
DATE_PROXIMITY_DAYS = 10


def is_valid_billing_cycle(billing_cycle: Optional[str]) -> bool:
    return bool(billing_cycle) and BILLING_CYCLE_PATTERN.fullmatch(billing_cycle) is not None


def is_payment_received(description: str) -> bool:
    return PAYMENT_RECEIVED_PATTERN.search(description) is not None


def current_billing_cycle() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def search_window(billing_cycle: str):
    """First day of the previous month to the last day of the next month."""
    year, month = (int(part) for part in billing_cycle.split("-"))
    start = date(year - 1, 12, 1) if month == 1 else date(year, month - 1, 1)
    end_year, end_month = (year + 1, 1) if month == 12 else (year, month + 1)
    end = date(end_year, end_month, monthrange(end_year, end_month)[1])
    return start, end


def score_bill_matches(
    bills: Sequence[TransactionModel], cc_payment_date: Optional[date], cc_payment_amount: Decimal
) -> List[BillMatch]:
    """
    Score candidate bill payments against the statement's payment-received line.

    A candidate matches when its amount is within 1% or 10.00 of the payment
    and its date is within 10 days. Closer amounts weigh more than closer dates.
    """
    if cc_payment_date is None:
        return []

    matches = []
    cc_amount_abs = abs(cc_payment_amount)

    for bill in bills:
        bill_amount_abs = abs(bill.amount)
        amount_diff = abs(bill_amount_abs - cc_amount_abs)
        percent_diff = float(amount_diff / bill_amount_abs) if bill_amount_abs else 0.0
        days_diff = abs((bill.date - cc_payment_date).days)

        is_amount_match = percent_diff <= AMOUNT_TOLERANCE_PERCENT or float(amount_diff) <= AMOUNT_TOLERANCE_ABSOLUTE
        is_date_match = days_diff <= DATE_PROXIMITY_DAYS
        if not (is_amount_match and is_date_match):
            continue

        amount_score = 1.0 - min(percent_diff / AMOUNT_TOLERANCE_PERCENT, 1.0)
        date_score = 1.0 - days_diff / DATE_PROXIMITY_DAYS
        matches.append(
            BillMatch(
                bill_payment_id=bill.id,
                bill_payment_date=bill.date,
                bill_payment_amount=bill.amount,
                bill_description=bill.description,
                cc_payment_date=cc_payment_date,
                cc_payment_amount=cc_amount_abs,
                amount_difference=amount_diff,
                days_difference=days_diff,
                match_score=round(amount_score * 0.7 + date_score * 0.3, 4),
            )
        )

    matches.sort(key=lambda m: m.match_score, reverse=True)
    return matches


class CreditCardService:
    """Use cases for importing credit card statements into a user's ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.transactions = TransactionRepository(session)
        self.categories = CategoryRepository(session)
        self.rules = CategoryRuleRepository(session)

    # ── PREVIEW ───────────────────────────────────────────

    async def preview_import(self, user_id: int, billing_cycle: str, lines: List[StatementLine]) -> ImportPreviewOut:
        self._validate(billing_cycle, lines)

        snapshot = await self._read(self.transactions.get_credit_card_status(user_id, billing_cycle))

        total_amount = Decimal("0.00")
        payment_received_amount = Decimal("0.00")
        cc_payment_date = None
        cc_payment_amount = Decimal("0.00")
        to_import = []
        for line in lines:
            if is_payment_received(line.description):
                payment_received_amount += abs(line.amount)
                cc_payment_date = line.date
                cc_payment_amount = line.amount
            else:
                # signed, so refunds subtract
                total_amount += line.amount
                to_import.append(line)

        start, end = search_window(billing_cycle)
        candidates = await self._read(self.transactions.find_potential_bill_payments(user_id, start, end))

        return ImportPreviewOut(
            billing_cycle=billing_cycle,
            total_transactions=len(to_import),
            total_amount=total_amount,
            potential_matches=score_bill_matches(candidates, cc_payment_date, cc_payment_amount),
            transactions_to_import=to_import,
            payment_received_amount=payment_received_amount,
            has_existing_import=snapshot.is_expanded,
        )

    # ── IMPORT ────────────────────────────────────────────

    async def import_transactions(
        self,
        user_id: int,
        billing_cycle: str,
        bill_payment_id: Optional[int],
        lines: List[StatementLine],
        apply_auto_category: bool = False,
    ) -> ImportResult:
        """
        Import statement lines for one billing cycle.

        Args:
            user_id: Owner of the statement and of the bill payment.
            billing_cycle: ``YYYY-MM``.
            bill_payment_id: Aggregate bill to expand, or None for a standalone import.
            lines: Statement lines, persisted in this order.
            apply_auto_category: Run the owner's active category rules on each line.

        Raises:
            InvalidBillingCycle, EmptyStatementLines, BillPaymentNotFound,
            BillAlreadyExpanded, PersistenceError.
        """
        self._validate(billing_cycle, lines)

        rules = await self._load_rules(user_id) if apply_auto_category else []
        known_categories = {}

        original_bill_amount = Decimal("0.00")
        bill = None
        if bill_payment_id is not None:
            bill = await self._read(self.transactions.find_bill_payment_by_id(bill_payment_id, user_id))
            if bill is None:
                raise BillPaymentNotFound()
            if await self._read(self.transactions.is_bill_expanded(bill_payment_id)):
                raise BillAlreadyExpanded()
            original_bill_amount = abs(bill.amount)

        now = datetime.now(timezone.utc)
        created = []
        categorized_count = 0
        total_amount = Decimal("0.00")
        for line in lines:
            hidden = is_payment_received(line.description)
            txn = TransactionModel(
                user_id=user_id,
                date=line.date,
                description=line.description,
                amount=line.amount,
                type="expense",
                credit_card_payment_id=bill_payment_id,
                billing_cycle=billing_cycle,
                installment_current=line.installment_current,
                installment_total=line.installment_total,
                is_hidden=hidden,
            )
            if not hidden:
                total_amount += abs(line.amount)
                if rules:
                    txn.category_id = await self._auto_categorize(line.description, rules, known_categories)
                    if txn.category_id is not None:
                        categorized_count += 1
            created.append(txn)

        if bill is not None:
            await self.transactions.bulk_create_cc_transactions(created, bill.id, bill.amount, billing_cycle)
        else:
            original_bill_amount = total_amount
            await self.transactions.bulk_create_standalone_cc_transactions(created)

        logger.info(
            f"Imported {len(created)} card transactions for user {user_id} ({billing_cycle}), "
            f"{categorized_count} auto-categorized"
        )
        return ImportResult(
            imported_count=len(created),
            categorized_count=categorized_count,
            bill_payment_id=bill_payment_id,
            billing_cycle=billing_cycle,
            original_bill_amount=original_bill_amount,
            imported_at=now,
            transactions=[
                ImportedTransaction(
                    id=t.id, date=t.date, description=t.description, amount=t.amount, category_id=t.category_id
                )
                for t in created
            ],
        )

    # ── COLLAPSE ──────────────────────────────────────────

    async def collapse(self, user_id: int, bill_payment_id: int) -> CollapseResult:
        bill = await self._read(self.transactions.find_bill_payment_by_id(bill_payment_id, user_id))
        if bill is None:
            raise BillPaymentNotFound()

        restored, deleted = await self.transactions.collapse_expansion(bill_payment_id)
        return CollapseResult(
            bill_payment_id=bill_payment_id,
            restored_amount=restored,
            deleted_transactions=deleted,
            collapsed_at=datetime.now(timezone.utc),
        )

    # ── STATUS ────────────────────────────────────────────

    async def get_status(self, user_id: int, billing_cycle: Optional[str] = None) -> CreditCardStatus:
        if not billing_cycle:
            recent = await self._read(self.transactions.find_most_recent_billing_cycle(user_id))
            billing_cycle = recent or current_billing_cycle()
        if not is_valid_billing_cycle(billing_cycle):
            raise InvalidBillingCycle()

        snapshot = await self._read(self.transactions.get_credit_card_status(user_id, billing_cycle))
        bill = snapshot.bill_payment
        summaries = [CreditCardTransactionSummary.model_validate(t) for t in snapshot.linked_transactions]
        return CreditCardStatus(
            billing_cycle=billing_cycle,
            is_expanded=snapshot.is_expanded,
            bill_payment_id=bill.id if bill is not None else None,
            bill_payment_date=bill.date if bill is not None else None,
            original_amount=snapshot.original_amount,
            current_amount=snapshot.current_amount,
            expanded_at=_as_utc(bill.expanded_at) if bill is not None and snapshot.is_expanded else None,
            linked_transactions=len(summaries),
            transactions_summary=summaries,
        )

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _validate(billing_cycle: str, lines: List[StatementLine]) -> None:
        if not is_valid_billing_cycle(billing_cycle):
            raise InvalidBillingCycle()
        if not lines:
            raise EmptyStatementLines()

    async def _load_rules(self, user_id: int):
        try:
            return await self.rules.find_active_by_owner(user_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(f"Failed to fetch category rules for user {user_id}, importing uncategorized: {e}")
            return []

    async def _auto_categorize(self, description: str, rules, known_categories: dict) -> Optional[int]:
        """First matching rule whose category still exists decides the category."""
        while rules:
            rule = find_matching_rule(description, rules)
            if rule is None:
                return None
            if rule.category_id not in known_categories:
                known_categories[rule.category_id] = await self._read(self.categories.find_by_id(rule.category_id))
            category = known_categories[rule.category_id]
            if category is not None:
                logger.debug(f"Auto-categorized {description!r} by rule #{rule.id} as {category.name!r}")
                return category.id
            rules = rules[rules.index(rule) + 1:]
        return None

    @staticmethod
    async def _read(awaitable):
        try:
            return await awaitable
        except SQLAlchemyError as e:
            logger.error(f"Credit card query failed: {e}")
            raise PersistenceError("failed to read credit card data") from e
