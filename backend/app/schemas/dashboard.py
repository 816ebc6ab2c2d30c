"""Pydantic schemas for the manager dashboard."""
import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from app.schemas.expense import ExpenseOut


class TeamMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    is_active: bool


class ManagerDashboardStats(BaseModel):
    pending_approvals: int
    approved_this_month: int
    total_team_expenses: Decimal
    team_members_count: int


class ManagerDashboard(BaseModel):
    team_members: list[TeamMemberOut]
    team_expenses: list[ExpenseOut]
    stats: ManagerDashboardStats
