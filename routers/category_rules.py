from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import UserModel
from schemas import (
    CategoryRuleIn,
    CategoryRuleOut,
    CategoryRuleUpdate,
    PatternTestIn,
    PatternTestOut,
    ReorderRulesIn,
)
from security.auth import get_current_user
from services.category_rule_service import CategoryRuleService

router = APIRouter(prefix="/category-rules", tags=["category rules"])


@router.post("", response_model=CategoryRuleOut, status_code=201)
async def create_rule(
    payload: CategoryRuleIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CategoryRuleService(db).create(current_user.id, payload)


@router.get("", response_model=List[CategoryRuleOut])
async def list_rules(db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)):
    return await CategoryRuleService(db).list_all(current_user.id)


# declared before "/{rule_id}" routes so the literal paths win
@router.put("/reorder", response_model=List[CategoryRuleOut])
async def reorder_rules(
    payload: ReorderRulesIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CategoryRuleService(db).reorder(current_user.id, payload.rules)


@router.post("/test", response_model=PatternTestOut)
async def test_pattern(
    payload: PatternTestIn, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)
):
    return await CategoryRuleService(db).test_pattern(current_user.id, payload.pattern, payload.limit)


@router.get("/{rule_id}", response_model=CategoryRuleOut)
async def get_rule(rule_id: int, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)):
    return await CategoryRuleService(db).get(current_user.id, rule_id)


@router.patch("/{rule_id}", response_model=CategoryRuleOut)
async def update_rule(
    rule_id: int,
    payload: CategoryRuleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await CategoryRuleService(db).update(current_user.id, rule_id, payload)


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(rule_id: int, db: AsyncSession = Depends(get_db), current_user: UserModel = Depends(get_current_user)):
    await CategoryRuleService(db).delete(current_user.id, rule_id)
    return Response(status_code=204)
