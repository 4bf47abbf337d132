"""
API Schemas

Pydantic models for request bodies and responses. The credit card service
builds the result models itself, routers only hand them back to FastAPI.
"""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, condecimal, constr, model_validator

TransactionType = Literal["income", "expense"]
# matches the Numeric(15, 2) amount columns, so input is never rounded on write
Amount = condecimal(max_digits=15, decimal_places=2)


# ----------------------------------------------------------------------------
# Auth
# ----------------------------------------------------------------------------
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRegister(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8)


class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr

    class Config:
        from_attributes = True


# ----------------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------------
class CategoryIn(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=50)
    type: TransactionType
    color: str = Field("#6366F1", pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: constr(min_length=1, max_length=50) = "tag"


class CategoryUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=50)] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: Optional[constr(min_length=1, max_length=50)] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    type: TransactionType
    color: str
    icon: str

    class Config:
        from_attributes = True


# ----------------------------------------------------------------------------
# Category rules
# ----------------------------------------------------------------------------
class CategoryRuleIn(BaseModel):
    pattern: str
    category_id: int
    priority: Optional[int] = None


class CategoryRuleUpdate(BaseModel):
    pattern: Optional[str] = None
    category_id: Optional[int] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class CategoryRuleOut(BaseModel):
    id: int
    pattern: str
    category_id: int
    priority: int
    is_active: bool

    class Config:
        from_attributes = True


class RulePriority(BaseModel):
    id: int
    priority: int


class ReorderRulesIn(BaseModel):
    rules: List[RulePriority] = Field(..., min_length=1)


class PatternTestIn(BaseModel):
    pattern: str
    limit: Optional[int] = None


class MatchingTransaction(BaseModel):
    id: int
    description: str
    amount: Decimal
    date: date


class PatternTestOut(BaseModel):
    match_count: int
    matching_transactions: List[MatchingTransaction]


# ----------------------------------------------------------------------------
# Transactions
# ----------------------------------------------------------------------------
class TransactionIn(BaseModel):
    type: TransactionType
    description: str
    amount: Amount
    date: date
    category_id: Optional[int] = None
    notes: Optional[str] = None


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    description: Optional[str] = None
    amount: Optional[Amount] = None
    date: Optional[dt.date] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None


class TransactionOut(BaseModel):
    id: int
    type: TransactionType
    description: str
    amount: Decimal
    date: date
    category_id: Optional[int] = None
    notes: Optional[str] = None
    is_hidden: bool = False
    billing_cycle: Optional[str] = None
    credit_card_payment_id: Optional[int] = None
    installment_current: Optional[int] = None
    installment_total: Optional[int] = None

    class Config:
        from_attributes = True


# ----------------------------------------------------------------------------
# Credit card statement import
# ----------------------------------------------------------------------------
class StatementLine(BaseModel):
    """One parsed line of a credit card statement."""

    date: date
    description: constr(strip_whitespace=True, min_length=1, max_length=255)
    amount: Amount
    installment_current: Optional[int] = Field(None, gt=0)
    installment_total: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_installments(self):
        if self.installment_current is not None:
            if self.installment_total is None or self.installment_current > self.installment_total:
                raise ValueError("installment_current must be <= installment_total")
        return self


class ImportPreviewIn(BaseModel):
    billing_cycle: str
    transactions: List[StatementLine]


class BillMatch(BaseModel):
    bill_payment_id: int
    bill_payment_date: date
    bill_payment_amount: Decimal
    bill_description: str
    cc_payment_date: Optional[date] = None
    cc_payment_amount: Decimal
    amount_difference: Decimal
    days_difference: int
    match_score: float


class ImportPreviewOut(BaseModel):
    billing_cycle: str
    total_transactions: int
    total_amount: Decimal
    potential_matches: List[BillMatch]
    transactions_to_import: List[StatementLine]
    payment_received_amount: Decimal
    has_existing_import: bool


class ImportIn(BaseModel):
    billing_cycle: str
    bill_payment_id: Optional[int] = None
    transactions: List[StatementLine]
    apply_auto_category: bool = False


class ImportedTransaction(BaseModel):
    id: int
    date: date
    description: str
    amount: Decimal
    category_id: Optional[int] = None


class ImportResult(BaseModel):
    imported_count: int
    categorized_count: int
    bill_payment_id: Optional[int] = None
    billing_cycle: str
    original_bill_amount: Decimal
    imported_at: datetime
    transactions: List[ImportedTransaction]


class CollapseIn(BaseModel):
    bill_payment_id: int


class CollapseResult(BaseModel):
    bill_payment_id: int
    restored_amount: Decimal
    deleted_transactions: int
    collapsed_at: datetime


class CreditCardTransactionSummary(BaseModel):
    id: int
    date: date
    description: str
    amount: Decimal
    category_id: Optional[int] = None
    is_hidden: bool = False

    class Config:
        from_attributes = True


class CreditCardStatus(BaseModel):
    billing_cycle: str
    is_expanded: bool
    bill_payment_id: Optional[int] = None
    bill_payment_date: Optional[date] = None
    original_amount: Optional[Decimal] = None
    current_amount: Optional[Decimal] = None
    expanded_at: Optional[datetime] = None
    linked_transactions: int = 0
    transactions_summary: List[CreditCardTransactionSummary] = []
