"""Approval workflow API endpoints.

  GET  /approvals                        — pending decisions for the current user
  POST /approvals/{expense_id}/approve
  POST /approvals/{expense_id}/reject

Admins may pass ``approver_id`` to decide on behalf of a planned approver;
the audit trail then records the admin as the actor.
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import RequestContext, get_request_context
from app.db.session import get_sync_session
from app.models.approval import ApprovalAction
from app.models.expense import Expense
from app.schemas.approval import (
    ApprovalActionOut,
    ApprovalDecisionRequest,
    ApprovalListResponse,
    PendingApprovalOut,
)
from app.services import audit as audit_svc
from app.services.approval import get_pending_approvals, record_approval_action

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Queue ───

@router.get(
    "",
    response_model=ApprovalListResponse,
    summary="List pending approval decisions for the current user",
)
def list_my_approvals(
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    items = [
        PendingApprovalOut(
            expense_id=expense.id,
            employee_id=expense.employee_id,
            step_order=row.step_order,
            amount=expense.amount,
            currency=expense.currency,
            description=expense.description,
            submitted_at=expense.submitted_at,
            activated_at=row.activated_at,
            version=expense.version,
        )
        for row, expense in get_pending_approvals(db, ctx.user_id)
        if expense.company_id == ctx.company_id
    ]
    return ApprovalListResponse(items=items, total=len(items))


# ─── Decisions ───

def _decide(
    db: Session,
    ctx: RequestContext,
    expense_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    action: ApprovalAction,
) -> ApprovalActionOut:
    approver_id = ctx.user_id
    if body.approver_id is not None and body.approver_id != ctx.user_id:
        if not ctx.role.can_act_for_others:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only admins may decide on behalf of another approver.",
            )
        approver_id = body.approver_id

    in_company = db.execute(
        select(Expense.id).where(Expense.id == expense_id, Expense.company_id == ctx.company_id)
    ).first()
    if in_company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found.")

    result = record_approval_action(
        db,
        expense_id,
        approver_id,
        action,
        comments=body.comments,
        actor_id=ctx.user_id,
        expected_version=body.expected_version,
        emit=audit_svc.change_sink(db),
    )
    if approver_id != ctx.user_id:
        logger.info("Decision recorded on behalf: expense=%s approver=%s actor=%s", expense_id, approver_id, ctx.user_id)
    return ApprovalActionOut(
        expense_id=result.expense_id,
        status=result.status,
        next_approvers=result.next_approvers,
        version=result.version,
    )


@router.post(
    "/{expense_id}/approve",
    response_model=ApprovalActionOut,
    summary="Approve an expense in the caller's active step",
)
def approve(
    expense_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    return _decide(db, ctx, expense_id, body, ApprovalAction.approved)


@router.post(
    "/{expense_id}/reject",
    response_model=ApprovalActionOut,
    summary="Reject an expense in the caller's active step",
)
def reject(
    expense_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    db: Annotated[Session, Depends(get_sync_session)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    return _decide(db, ctx, expense_id, body, ApprovalAction.rejected)
