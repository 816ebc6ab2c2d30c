"""Pydantic schemas for company signup."""
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.schemas.auth import UserOut


class CompanySignupIn(BaseModel):
    """Create a company together with its first admin."""
    company_name: str = Field(min_length=1, max_length=255)
    country: str = Field(min_length=1, max_length=100)
    currency: str = Field(min_length=3, max_length=10)
    admin_email: EmailStr
    admin_first_name: str = Field(min_length=1, max_length=100)
    admin_last_name: str = Field(min_length=1, max_length=100)
    admin_password: str = Field(min_length=8)


class CompanyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    country: str
    currency: str
    created_at: datetime


class SignupOut(BaseModel):
    company: CompanyOut
    admin: UserOut
    access_token: str
    token_type: str = "bearer"
