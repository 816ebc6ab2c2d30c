"""User management endpoints (admin only).

Manager assignments are checked against the company's whole user set so a
manager from another company, an inactive manager, or a loop in the
reporting chain is refused before it reaches the approval engine.
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import RequestContext, require_admin
from app.core.security import hash_password
from app.db.session import get_session
from app.models.user import Role, User
from app.schemas.admin_user import AdminUserCreate, AdminUserListResponse, AdminUserOut, AdminUserUpdate
from app.services import audit as audit_svc
from app.workflow.resolver import validate_manager_assignment

logger = logging.getLogger(__name__)

router = APIRouter()


async def _company_users(db: AsyncSession, company_id: uuid.UUID) -> dict[uuid.UUID, User]:
    result = await db.execute(select(User).where(User.company_id == company_id))
    return {u.id: u for u in result.scalars().all()}


@router.get("", response_model=AdminUserListResponse, summary="List users of the caller's company")
async def list_users(
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
    role: Role | None = Query(None, description="Only users with this role"),
):
    stmt = select(User).where(User.company_id == ctx.company_id, User.deleted_at.is_(None))
    if role is not None:
        stmt = stmt.where(User.role == role)
    result = await db.execute(stmt.order_by(User.last_name, User.first_name))
    items = [AdminUserOut.model_validate(u) for u in result.scalars().all()]
    return AdminUserListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=AdminUserOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user in the caller's company",
)
async def create_user(
    body: AdminUserCreate,
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    existing = await db.execute(select(User).where(User.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered.")

    user = User(
        id=uuid.uuid4(),
        company_id=ctx.company_id,
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        password_hash=hash_password(body.password),
        role=body.role,
        is_manager_approver=body.is_manager_approver,
        is_active=True,
    )
    users = await _company_users(db, ctx.company_id)
    users[user.id] = user
    validate_manager_assignment(users, user.id, body.manager_id)
    user.manager_id = body.manager_id

    db.add(user)
    await db.flush()
    audit_svc.log(
        db,
        action="user.created",
        entity_type="user",
        entity_id=user.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
        after={"email": user.email, "role": user.role.value, "manager_id": user.manager_id},
    )
    await db.commit()
    await db.refresh(user)
    logger.info("User created: user=%s role=%s company=%s", user.id, user.role.value, ctx.company_id)
    return AdminUserOut.model_validate(user)


@router.patch("/{user_id}", response_model=AdminUserOut, summary="Update role, manager or status of a user")
async def update_user(
    user_id: uuid.UUID,
    body: AdminUserUpdate,
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    users = await _company_users(db, ctx.company_id)
    user = users.get(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    changes = body.model_dump(exclude_unset=True)
    if "manager_id" in changes:
        validate_manager_assignment(users, user.id, changes["manager_id"])

    before = {"role": user.role.value, "manager_id": user.manager_id, "is_active": user.is_active}
    for field, value in changes.items():
        setattr(user, field, value)

    audit_svc.log(
        db,
        action="user.updated",
        entity_type="user",
        entity_id=user.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
        before=before,
        after={"role": Role(user.role).value, "manager_id": user.manager_id, "is_active": user.is_active},
    )
    await db.commit()
    await db.refresh(user)
    return AdminUserOut.model_validate(user)
