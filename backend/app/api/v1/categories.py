"""Expense category endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import RequestContext, get_request_context, require_admin
from app.db.session import get_session
from app.models.expense import ExpenseCategory
from app.schemas.category import CategoryIn, CategoryOut

router = APIRouter()


@router.get("", response_model=list[CategoryOut], summary="List active categories of the caller's company")
async def list_categories(
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    result = await db.execute(
        select(ExpenseCategory)
        .where(ExpenseCategory.company_id == ctx.company_id, ExpenseCategory.is_active.is_(True))
        .order_by(ExpenseCategory.name)
    )
    return [CategoryOut.model_validate(c) for c in result.scalars().all()]


@router.post(
    "",
    response_model=CategoryOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an expense category (ADMIN)",
)
async def create_category(
    body: CategoryIn,
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    category = ExpenseCategory(company_id=ctx.company_id, name=body.name, description=body.description, is_active=True)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return CategoryOut.model_validate(category)
