"""Company signup and profile endpoints."""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.deps import RequestContext, get_request_context
from app.core.security import create_access_token, hash_password
from app.db.session import get_session
from app.models.company import Company
from app.models.expense import ExpenseCategory
from app.models.user import Role, User
from app.schemas.auth import UserOut
from app.schemas.company import CompanyOut, CompanySignupIn, SignupOut
from app.services import audit as audit_svc

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a company with its first admin user",
)
async def signup(
    body: CompanySignupIn,
    db: Annotated[AsyncSession, Depends(get_session)],
):
    existing = await db.execute(select(User).where(User.email == body.admin_email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered.")

    company = Company(name=body.company_name, country=body.country, currency=body.currency.upper())
    db.add(company)
    await db.flush()

    admin = User(
        company_id=company.id,
        email=body.admin_email,
        first_name=body.admin_first_name,
        last_name=body.admin_last_name,
        password_hash=hash_password(body.admin_password),
        role=Role.admin,
        is_active=True,
    )
    db.add(admin)
    for name in settings.default_categories_list:
        db.add(ExpenseCategory(company_id=company.id, name=name, is_active=True))
    await db.flush()

    audit_svc.log(
        db,
        action="company.created",
        entity_type="company",
        entity_id=company.id,
        actor_id=admin.id,
        actor_email=admin.email,
        company_id=company.id,
        after={"name": company.name, "currency": company.currency},
    )
    await db.commit()
    await db.refresh(company)
    await db.refresh(admin)

    logger.info("Company signed up: company=%s admin=%s", company.id, admin.id)
    token = create_access_token(subject=str(admin.id), role=admin.role.value, company_id=str(company.id))
    return SignupOut(
        company=CompanyOut.model_validate(company),
        admin=UserOut.model_validate(admin),
        access_token=token,
    )


@router.get("/me", response_model=CompanyOut, summary="The caller's company")
async def my_company(
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    company = await db.get(Company, ctx.company_id)
    if company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found.")
    return CompanyOut.model_validate(company)
