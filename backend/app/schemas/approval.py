"""Pydantic schemas for approval workflow API endpoints."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from app.models.approval import ApprovalAction
from app.models.expense import ExpenseStatus


# ─── Decision request body ───

class ApprovalDecisionRequest(BaseModel):
    comments: str | None = None
    # Admins may decide on behalf of a planned approver.
    approver_id: uuid.UUID | None = None
    expected_version: int | None = None


class ApprovalActionOut(BaseModel):
    expense_id: uuid.UUID
    status: ExpenseStatus
    next_approvers: list[uuid.UUID] | None
    version: int


# ─── Approval state ───

class HistoryEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    approver_id: uuid.UUID
    step_order: int
    action: ApprovalAction
    comments: str | None
    activated_at: datetime | None
    actioned_at: datetime | None


class ApprovalStateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    expense_id: uuid.UUID
    status: ExpenseStatus
    current_wave: int | None
    active_approvers: list[uuid.UUID]
    version: int
    history: list[HistoryEntryOut]


# ─── Approver queue ───

class PendingApprovalOut(BaseModel):
    expense_id: uuid.UUID
    employee_id: uuid.UUID
    step_order: int
    amount: Decimal
    currency: str
    description: str
    submitted_at: datetime
    activated_at: datetime | None
    version: int


class ApprovalListResponse(BaseModel):
    items: list[PendingApprovalOut]
    total: int
