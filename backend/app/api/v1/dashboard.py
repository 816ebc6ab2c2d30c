"""Manager dashboard: direct reports, their expenses and headline counts."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import RequestContext, require_approver
from app.db.session import get_sync_session
from app.models.expense import Expense, ExpenseStatus
from app.models.user import User
from app.schemas.dashboard import ManagerDashboard, ManagerDashboardStats, TeamMemberOut
from app.schemas.expense import ExpenseOut
from app.services.approval import get_pending_approvals

router = APIRouter()


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@router.get("/manager", response_model=ManagerDashboard, summary="Team overview for the calling manager")
def manager_dashboard(
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(require_approver)],
):
    members = db.execute(
        select(User).where(
            User.manager_id == ctx.user_id,
            User.company_id == ctx.company_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        ).order_by(User.last_name, User.first_name)
    ).scalars().all()

    expenses = db.execute(
        select(Expense)
        .join(User, User.id == Expense.employee_id)
        .where(User.manager_id == ctx.user_id, Expense.company_id == ctx.company_id)
        .order_by(Expense.submitted_at.desc())
    ).scalars().all()

    month_start = datetime.now(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    approved_this_month = sum(
        1 for e in expenses
        if e.status == ExpenseStatus.approved and e.finalized_at and _as_utc(e.finalized_at) >= month_start
    )
    pending = [
        row for row, expense in get_pending_approvals(db, ctx.user_id)
        if expense.company_id == ctx.company_id
    ]

    return ManagerDashboard(
        team_members=[TeamMemberOut.model_validate(m) for m in members],
        team_expenses=[ExpenseOut.model_validate(e) for e in expenses],
        stats=ManagerDashboardStats(
            pending_approvals=len(pending),
            approved_this_month=approved_this_month,
            total_team_expenses=sum((e.amount for e in expenses), Decimal("0")),
            team_members_count=len(members),
        ),
    )
