import uuid
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import decode_token
from app.db.session import get_session
from app.models.user import Role, User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, resolved once per request and passed down explicitly."""

    user_id: uuid.UUID
    role: Role
    company_id: uuid.UUID
    email: str | None = None

    @classmethod
    def from_user(cls, user) -> "RequestContext":
        return cls(user_id=user.id, role=Role(user.role), company_id=user.company_id, email=user.email)


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_session)],
):
    """Validate JWT and return the User ORM object."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise credentials_exc
        user_id: str = payload.get("sub")
        if not user_id:
            raise credentials_exc
        parsed_id = UUID(user_id)
    except (JWTError, ValueError):
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == parsed_id, User.deleted_at.is_(None)))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise credentials_exc
    return user


async def get_request_context(user=Depends(get_current_user)) -> RequestContext:
    return RequestContext.from_user(user)


def require_capability(capability: str):
    """Dependency factory — raises 403 unless the caller's Role has ``capability``."""
    async def check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not getattr(ctx.role, capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{ctx.role.value}' is not permitted for this action.",
            )
        return ctx
    return check


require_admin = require_capability("can_administer")
require_approver = require_capability("can_approve")
