import uuid

from pydantic import BaseModel

from app.models.user import Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: Role
    manager_id: uuid.UUID | None
    is_manager_approver: bool
    is_active: bool

    model_config = {"from_attributes": True}
