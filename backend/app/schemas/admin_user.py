"""Pydantic schemas for admin user management."""
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import Role


class AdminUserCreate(BaseModel):
    """Create a new user in the admin's company."""
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8)
    role: Role = Role.employee
    manager_id: uuid.UUID | None = None
    is_manager_approver: bool = False


class AdminUserUpdate(BaseModel):
    """Update user fields (admin only). ``manager_id: null`` clears the manager."""
    first_name: str | None = None
    last_name: str | None = None
    role: Role | None = None
    manager_id: uuid.UUID | None = None
    is_manager_approver: bool | None = None
    is_active: bool | None = None


class AdminUserOut(BaseModel):
    """User response for admin endpoints."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: Role
    manager_id: uuid.UUID | None
    is_manager_approver: bool
    is_active: bool
    created_at: datetime


class AdminUserListResponse(BaseModel):
    items: list[AdminUserOut]
    total: int
