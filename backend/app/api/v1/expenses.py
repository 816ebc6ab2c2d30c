"""Expense endpoints.

  POST   /expenses                        — create (optionally submit right away)
  GET    /expenses                        — list, scoped by the caller's role
  GET    /expenses/{id}                   — detail
  PATCH  /expenses/{id}                   — edit a draft (not yet submitted)
  DELETE /expenses/{id}                   — delete a draft
  POST   /expenses/{id}/submit            — resolve the approval plan
  GET    /expenses/{id}/approval-state    — active step and decision history

These handlers use the sync session the approval engine runs on.
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.deps import RequestContext, get_request_context
from app.db.session import get_sync_session
from app.models.approval import ExpenseApproval
from app.models.expense import Expense, ExpenseCategory, ExpenseStatus
from app.models.user import Role, User
from app.schemas.approval import ApprovalStateOut
from app.schemas.expense import ExpenseCreate, ExpenseListResponse, ExpenseOut, ExpenseUpdate, SubmitOut
from app.services import audit as audit_svc
from app.services.approval import (
    SubmitResult,
    auto_approve_expense,
    get_approval_state,
    require_unsubmitted,
    submit_expense,
)
from app.workflow.errors import ApprovalEngineError, ConcurrentModificationError, NoMatchingRuleError

logger = logging.getLogger(__name__)

router = APIRouter()

AUTO_APPROVE = "auto_approve"


# ─── Helpers ───

def _get_expense(db: Session, expense_id: uuid.UUID, ctx: RequestContext, for_update: bool = False) -> Expense:
    stmt = select(Expense).where(Expense.id == expense_id, Expense.company_id == ctx.company_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    expense = db.execute(stmt).scalars().first()
    if expense is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found.")
    return expense


def _can_view(db: Session, ctx: RequestContext, expense: Expense) -> bool:
    if ctx.role.can_administer or expense.employee_id == ctx.user_id:
        return True
    if ctx.role == Role.manager:
        employee = db.get(User, expense.employee_id)
        if employee is not None and employee.manager_id == ctx.user_id:
            return True
    in_plan = db.execute(
        select(ExpenseApproval.id).where(
            ExpenseApproval.expense_id == expense.id,
            ExpenseApproval.approver_id == ctx.user_id,
        )
    ).first()
    return in_plan is not None


def _viewable_expense(db: Session, expense_id: uuid.UUID, ctx: RequestContext) -> Expense:
    expense = _get_expense(db, expense_id, ctx)
    if not _can_view(db, ctx, expense):
        # Same answer as a missing expense so ids don't leak across users.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found.")
    return expense


def _editable_expense(db: Session, expense_id: uuid.UUID, ctx: RequestContext) -> Expense:
    """Lock a draft the caller owns (or administers) for edit or delete."""
    expense = _get_expense(db, expense_id, ctx, for_update=True)
    if not _can_view(db, ctx, expense):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found.")
    if expense.employee_id != ctx.user_id and not ctx.role.can_administer:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the submitter may change this expense.")
    require_unsubmitted(expense)
    return expense


def _check_category(db: Session, category_id: uuid.UUID | None, ctx: RequestContext) -> None:
    if category_id is None:
        return
    category = db.execute(
        select(ExpenseCategory).where(
            ExpenseCategory.id == category_id,
            ExpenseCategory.company_id == ctx.company_id,
            ExpenseCategory.is_active.is_(True),
        )
    ).scalars().first()
    if category is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Unknown category.")


def _commit_draft(db: Session, expense_id: uuid.UUID) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentModificationError(expense_id) from exc


def _submit(db: Session, expense: Expense, ctx: RequestContext) -> SubmitResult:
    """Submit, applying the configured policy when no rule covers the amount.

    Rule matching fails before anything is written, so the auto-approval
    runs in the same transaction.
    """
    emit = audit_svc.change_sink(db)
    try:
        return submit_expense(db, expense.id, actor_id=ctx.user_id, emit=emit)
    except NoMatchingRuleError:
        if settings.NO_MATCHING_RULE_POLICY != AUTO_APPROVE:
            raise
        logger.info("No rule for expense %s, auto-approving per policy", expense.id)
        return auto_approve_expense(db, expense.id, actor_id=ctx.user_id, emit=emit)


# ─── Endpoints ───

@router.post(
    "",
    response_model=ExpenseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an expense for the caller",
)
def create_expense(
    body: ExpenseCreate,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    """With ``submit``, the expense is created and submitted in one transaction.

    A failed submission leaves nothing behind, so the client can retry.
    """
    _check_category(db, body.category_id, ctx)

    expense = Expense(
        company_id=ctx.company_id,
        employee_id=ctx.user_id,
        status=ExpenseStatus.pending,
        **body.model_dump(exclude={"submit"}),
    )
    expense.currency = expense.currency.upper()
    db.add(expense)
    db.flush()
    audit_svc.log(
        db,
        action="expense.created",
        entity_type="expense",
        entity_id=expense.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
        after={"amount": str(expense.amount), "currency": expense.currency},
    )

    if not body.submit:
        db.commit()
        logger.info("Expense created: expense=%s employee=%s amount=%s", expense.id, ctx.user_id, expense.amount)
        return ExpenseOut.model_validate(expense)

    try:
        _submit(db, expense, ctx)
    except ApprovalEngineError:
        db.rollback()
        logger.info("Expense create rolled back, submission failed: employee=%s amount=%s", ctx.user_id, body.amount)
        raise
    db.refresh(expense)
    logger.info("Expense created and submitted: expense=%s employee=%s", expense.id, ctx.user_id)
    return ExpenseOut.model_validate(expense)


@router.get("", response_model=ExpenseListResponse, summary="List expenses visible to the caller")
def list_expenses(
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    status_filter: ExpenseStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """Admins see the whole company, managers their own and their direct reports', employees their own."""
    stmt = select(Expense).where(Expense.company_id == ctx.company_id)
    if ctx.role == Role.manager:
        reports = select(User.id).where(User.manager_id == ctx.user_id)
        stmt = stmt.where(or_(Expense.employee_id == ctx.user_id, Expense.employee_id.in_(reports)))
    elif not ctx.role.can_administer:
        stmt = stmt.where(Expense.employee_id == ctx.user_id)
    if status_filter is not None:
        stmt = stmt.where(Expense.status == status_filter)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    expenses = db.execute(
        stmt.order_by(Expense.created_at.desc(), Expense.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().all()
    return ExpenseListResponse(items=[ExpenseOut.model_validate(e) for e in expenses], total=total)


@router.get("/{expense_id}", response_model=ExpenseOut, summary="Expense detail")
def get_expense(
    expense_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    return ExpenseOut.model_validate(_viewable_expense(db, expense_id, ctx))


@router.patch(
    "/{expense_id}",
    response_model=ExpenseOut,
    summary="Edit an expense that has not been submitted",
)
def update_expense(
    expense_id: uuid.UUID,
    body: ExpenseUpdate,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    expense = _editable_expense(db, expense_id, ctx)
    if body.expected_version is not None and body.expected_version != expense.version:
        raise ConcurrentModificationError(expense.id)

    changes = body.model_dump(exclude_unset=True, exclude={"expected_version"})
    if "category_id" in changes:
        _check_category(db, changes["category_id"], ctx)
    if "currency" in changes:
        changes["currency"] = changes["currency"].upper()

    before = {"amount": str(expense.amount), "currency": expense.currency, "description": expense.description}
    for field, value in changes.items():
        setattr(expense, field, value)
    audit_svc.log(
        db,
        action="expense.updated",
        entity_type="expense",
        entity_id=expense.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
        before=before,
        after=body.model_dump(mode="json", exclude_unset=True, exclude={"expected_version"}),
    )
    _commit_draft(db, expense.id)
    logger.info("Expense updated: expense=%s fields=%s", expense.id, sorted(changes))
    return ExpenseOut.model_validate(expense)


@router.delete(
    "/{expense_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an expense that has not been submitted",
)
def delete_expense(
    expense_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    expense = _editable_expense(db, expense_id, ctx)
    audit_svc.log(
        db,
        action="expense.deleted",
        entity_type="expense",
        entity_id=expense.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
        before={"amount": str(expense.amount), "currency": expense.currency, "description": expense.description},
    )
    db.delete(expense)
    _commit_draft(db, expense.id)
    logger.info("Expense deleted: expense=%s actor=%s", expense_id, ctx.user_id)


@router.post("/{expense_id}/submit", response_model=SubmitOut, summary="Submit an expense for approval")
def submit(
    expense_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    expense = _get_expense(db, expense_id, ctx)
    if expense.employee_id != ctx.user_id and not ctx.role.can_act_for_others:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the submitter may submit this expense.")
    result = _submit(db, expense, ctx)
    return SubmitOut(
        expense_id=result.expense_id,
        status=result.status,
        active_approvers=result.active_approvers,
        version=result.version,
    )


@router.get(
    "/{expense_id}/approval-state",
    response_model=ApprovalStateOut,
    summary="Active approval step and decision history",
)
def approval_state(
    expense_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    _viewable_expense(db, expense_id, ctx)
    return ApprovalStateOut.model_validate(get_approval_state(db, expense_id))
