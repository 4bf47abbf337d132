from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import UserModel
from schemas import TransactionIn, TransactionOut, TransactionType, TransactionUpdate
from security.auth import get_current_user
from services.transaction_service import TransactionService

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("", response_model=TransactionOut, status_code=201)
async def create_transaction(
    payload: TransactionIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await TransactionService(db).create(current_user.id, payload)


@router.get("", response_model=List[TransactionOut])
async def list_transactions(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    ttype: Optional[TransactionType] = None,
    category_id: Optional[int] = None,
    billing_cycle: Optional[str] = None,
    include_hidden: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await TransactionService(db).list_all(
        current_user.id,
        from_date=from_date,
        to_date=to_date,
        ttype=ttype,
        category_id=category_id,
        billing_cycle=billing_cycle,
        include_hidden=include_hidden,
    )


@router.get("/{txn_id}", response_model=TransactionOut)
async def get_transaction(
    txn_id: int, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await TransactionService(db).get(current_user.id, txn_id)


@router.patch("/{txn_id}", response_model=TransactionOut)
async def update_transaction(
    txn_id: int,
    payload: TransactionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await TransactionService(db).update(current_user.id, txn_id, payload)


@router.delete("/{txn_id}", status_code=204)
async def delete_transaction(
    txn_id: int, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    await TransactionService(db).delete(current_user.id, txn_id)
    return Response(status_code=204)
