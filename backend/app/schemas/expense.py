"""Pydantic schemas for expenses."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.expense import ExpenseStatus


class ExpenseCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(min_length=3, max_length=10)
    description: str = Field(min_length=1)
    expense_date: datetime
    category_id: uuid.UUID | None = None
    merchant_name: str | None = Field(default=None, max_length=255)
    submit: bool = Field(default=False, description="Submit for approval right after creation")


class ExpenseUpdate(BaseModel):
    """Edit a draft. Only ``category_id`` and ``merchant_name`` may be cleared."""
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    currency: str | None = Field(default=None, min_length=3, max_length=10)
    description: str | None = Field(default=None, min_length=1)
    expense_date: datetime | None = None
    category_id: uuid.UUID | None = None
    merchant_name: str | None = Field(default=None, max_length=255)
    expected_version: int | None = None

    @model_validator(mode="after")
    def _no_null_for_required_fields(self):
        cleared = sorted(
            name for name in self.model_fields_set & {"amount", "currency", "description", "expense_date"}
            if getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")
        return self


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    employee_id: uuid.UUID
    category_id: uuid.UUID | None
    amount: Decimal
    currency: str
    description: str
    expense_date: datetime
    merchant_name: str | None
    status: ExpenseStatus
    current_approval_step: int | None
    approval_rule_id: uuid.UUID | None
    submitted_at: datetime
    finalized_at: datetime | None
    version: int


class ExpenseListResponse(BaseModel):
    items: list[ExpenseOut]
    total: int


class SubmitOut(BaseModel):
    expense_id: uuid.UUID
    status: ExpenseStatus
    active_approvers: list[uuid.UUID]
    version: int
