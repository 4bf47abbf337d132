from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import UserModel
from schemas import CategoryIn, CategoryOut, CategoryUpdate, TransactionType
from security.auth import get_current_user
from services.category_service import CategoryService

router = APIRouter(prefix="/categories", tags=["categories"])


@router.post("", response_model=CategoryOut, status_code=201)
async def create_category(
    payload: CategoryIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CategoryService(db).create(current_user.id, payload)


@router.get("", response_model=List[CategoryOut])
async def list_categories(
    ctype: Optional[TransactionType] = None,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await CategoryService(db).list_all(current_user.id, ctype)


@router.get("/{category_id}", response_model=CategoryOut)
async def get_category(
    category_id: int, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CategoryService(db).get(current_user.id, category_id)


@router.patch("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await CategoryService(db).update(current_user.id, category_id, payload)


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: int, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    await CategoryService(db).delete(current_user.id, category_id)
    return Response(status_code=204)
