"""
Credit card statement endpoints, mounted under /transactions/credit-card.

The client parses the statement file; these endpoints receive its lines.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import UserModel
from schemas import (
    CollapseIn,
    CollapseResult,
    CreditCardStatus,
    ImportIn,
    ImportPreviewIn,
    ImportPreviewOut,
    ImportResult,
)
from security.auth import get_current_user
from services.credit_card_service import CreditCardService

router = APIRouter(prefix="/transactions/credit-card", tags=["credit card"])


@router.post("/preview", response_model=ImportPreviewOut)
async def preview_import(
    payload: ImportPreviewIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CreditCardService(db).preview_import(current_user.id, payload.billing_cycle, payload.transactions)


@router.post("/import", response_model=ImportResult, status_code=201)
async def import_statement(
    payload: ImportIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CreditCardService(db).import_transactions(
        current_user.id,
        payload.billing_cycle,
        payload.bill_payment_id,
        payload.transactions,
        apply_auto_category=payload.apply_auto_category,
    )


@router.post("/collapse", response_model=CollapseResult)
async def collapse_expansion(
    payload: CollapseIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CreditCardService(db).collapse(current_user.id, payload.bill_payment_id)


@router.get("/status", response_model=CreditCardStatus)
async def credit_card_status(
    billing_cycle: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await CreditCardService(db).get_status(current_user.id, billing_cycle)
