"""Expense approval state machine.

pending -> in_progress -> approved | rejected

All functions accept a sync SQLAlchemy Session and commit their own
transaction. The expense row is locked (SELECT ... FOR UPDATE) and carries a
version counter, so two decisions on the same expense are serialized and a
stale write fails with ConcurrentModificationError instead of overwriting.
Each status transition is handed to ``emit`` before commit, so an audit sink
writing to the same session lands in the same transaction.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.db.base import utcnow
from app.models.approval import ApprovalAction, ExpenseApproval
from app.models.expense import Expense, ExpenseStatus
from app.models.user import User
from app.services.rule_store import match_rule
from app.workflow.changes import ChangeRecord, ChangeSink, discard
from app.workflow.errors import (
    AlreadyActionedError,
    ConcurrentModificationError,
    CorruptApprovalPlanError,
    ExpenseAlreadySubmittedError,
    ExpenseFinalizedError,
    ExpenseNotFoundError,
    ExpenseNotSubmittedError,
    InvalidApproverError,
    InvalidRuleConfigurationError,
    UnresolvableApproverError,
)
from app.workflow.evaluator import Verdict, WaveAction, evaluate
from app.workflow.policy import RulePolicy, validate_rule_config
from app.workflow.resolver import group_waves, resolve

logger = logging.getLogger(__name__)


# ─── Results ───

@dataclass
class SubmitResult:
    expense_id: uuid.UUID
    status: ExpenseStatus
    active_approvers: list[uuid.UUID]
    version: int


@dataclass
class ActionResult:
    expense_id: uuid.UUID
    status: ExpenseStatus
    next_approvers: list[uuid.UUID] | None
    version: int


@dataclass
class HistoryEntry:
    approver_id: uuid.UUID
    step_order: int
    action: ApprovalAction
    comments: str | None
    activated_at: datetime | None
    actioned_at: datetime | None


@dataclass
class ApprovalState:
    expense_id: uuid.UUID
    status: ExpenseStatus
    current_wave: int | None
    active_approvers: list[uuid.UUID]
    version: int
    history: list[HistoryEntry] = field(default_factory=list)


# ─── Submit ───

def submit_expense(
    db: Session,
    expense_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    emit: ChangeSink = discard,
) -> SubmitResult:
    """Resolve the approval plan for a pending expense and dispatch its first wave.

    Raises:
        ExpenseNotFoundError, ExpenseFinalizedError, ExpenseAlreadySubmittedError,
        NoMatchingRuleError, UnresolvableApproverError, ManagerCycleDetectedError.
    """
    expense = _lock_expense(db, expense_id)
    require_unsubmitted(expense)

    rule = match_rule(db, expense.company_id, expense.amount)
    policy = RulePolicy.from_rule(rule)
    users = _company_users(db, expense.company_id)
    employee = users.get(expense.employee_id)
    if employee is None:
        raise UnresolvableApproverError(f"Submitter {expense.employee_id} not found in company.")

    plan = resolve(employee, policy, rule.steps, users)
    first_order, first_wave = group_waves(plan)[0]

    now = utcnow()
    for step in plan:
        db.add(ExpenseApproval(
            expense_id=expense.id,
            approver_id=step.approver_id,
            step_order=step.step_order,
            action=ApprovalAction.pending,
            activated_at=now if step.step_order == first_order else None,
        ))

    old_status = expense.status
    expense.status = ExpenseStatus.in_progress
    expense.current_approval_step = first_order
    expense.approval_rule_id = rule.id
    expense.rule_snapshot = policy.to_snapshot()
    expense.submitted_at = now

    emit(ChangeRecord(
        expense_id=expense.id,
        company_id=expense.company_id,
        old_status=old_status.value,
        new_status=expense.status.value,
        actor_id=actor_id,
        at=now,
        reason=f"Submitted under rule '{rule.name}' (v{policy.version})",
        details={"plan": [(s.step_order, str(s.approver_id)) for s in plan]},
    ))
    _commit(db, expense.id)

    logger.info(
        "Expense submitted: expense=%s rule=%s waves=%d first_wave=%s",
        expense.id, rule.id, len(group_waves(plan)), first_wave,
    )
    return SubmitResult(
        expense_id=expense.id,
        status=expense.status,
        active_approvers=first_wave,
        version=expense.version,
    )


def auto_approve_expense(
    db: Session,
    expense_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    emit: ChangeSink = discard,
    reason: str = "No approval rule covers this amount; approved automatically",
) -> SubmitResult:
    """Approve a pending expense without a plan (caller's no-matching-rule policy)."""
    expense = _lock_expense(db, expense_id)
    require_unsubmitted(expense)

    now = utcnow()
    old_status = expense.status
    expense.status = ExpenseStatus.approved
    expense.current_approval_step = None
    expense.submitted_at = now
    expense.finalized_at = now
    emit(ChangeRecord(
        expense_id=expense.id,
        company_id=expense.company_id,
        old_status=old_status.value,
        new_status=expense.status.value,
        actor_id=actor_id,
        at=now,
        reason=reason,
    ))
    _commit(db, expense.id)

    logger.info("Expense auto-approved: expense=%s", expense.id)
    return SubmitResult(expense_id=expense.id, status=expense.status, active_approvers=[], version=expense.version)


# ─── Record a decision ───

def record_approval_action(
    db: Session,
    expense_id: uuid.UUID,
    approver_id: uuid.UUID,
    action: ApprovalAction | str,
    comments: str | None = None,
    actor_id: uuid.UUID | None = None,
    expected_version: int | None = None,
    emit: ChangeSink = discard,
) -> ActionResult:
    """Record ``approver_id``'s decision and move the expense forward if the wave is decided.

    Args:
        actor_id: Who made the call, when acting on the approver's behalf.
            Defaults to the approver.
        expected_version: The expense version the caller last read. When
            given and the stored version differs, nothing is written.

    Raises:
        ValueError: action is not 'approved' or 'rejected'.
        ExpenseNotFoundError, ExpenseFinalizedError, ExpenseNotSubmittedError,
        InvalidApproverError, AlreadyActionedError, ConcurrentModificationError,
        CorruptApprovalPlanError.
    """
    action = ApprovalAction(action)
    if action == ApprovalAction.pending:
        raise ValueError("Action must be 'approved' or 'rejected'.")

    expense = _lock_expense(db, expense_id)
    if expected_version is not None and expense.version != expected_version:
        raise ConcurrentModificationError(expense.id)
    rows = _plan_rows(db, expense.id)
    if expense.status.is_terminal:
        # A repeated decision gets the more specific answer.
        if any(r.approver_id == approver_id and r.action != ApprovalAction.pending for r in rows):
            raise AlreadyActionedError(expense.id, approver_id)
        raise ExpenseFinalizedError(expense.id, expense.status.value)
    if expense.status != ExpenseStatus.in_progress:
        raise ExpenseNotSubmittedError(expense.id)

    policy = _stored_policy(expense)
    current = expense.current_approval_step
    wave_rows = [r for r in rows if r.step_order == current]
    if not wave_rows:
        raise CorruptApprovalPlanError(expense.id, f"active wave {current} has no approvers")

    row = _row_for_action(expense, rows, wave_rows, approver_id)

    now = utcnow()
    row.action = action
    row.comments = comments
    row.actioned_at = now
    # Touch the expense so every decision bumps its version.
    expense.updated_at = now

    verdict = evaluate(policy, [WaveAction(r.approver_id, r.action) for r in wave_rows])
    actor = actor_id or approver_id
    old_status = expense.status
    next_approvers: list[uuid.UUID] | None

    if verdict == Verdict.reject:
        expense.status = ExpenseStatus.rejected
        expense.finalized_at = now
        next_approvers = None
        emit(ChangeRecord(
            expense_id=expense.id, company_id=expense.company_id,
            old_status=old_status.value, new_status=expense.status.value,
            actor_id=actor, at=now,
            reason=f"Rejected at step {current}",
            details={"step": current, "approver_id": str(approver_id), "comments": comments},
        ))

    elif verdict == Verdict.advance:
        later = [(order, members) for order, members in group_waves(rows) if order > current]
        if later:
            next_order, next_approvers = later[0]
            for r in rows:
                if r.step_order == next_order:
                    r.activated_at = now
            expense.current_approval_step = next_order
            emit(ChangeRecord(
                expense_id=expense.id, company_id=expense.company_id,
                old_status=old_status.value, new_status=expense.status.value,
                actor_id=actor, at=now,
                reason=f"Step {current} approved; step {next_order} activated",
                details={"from_step": current, "to_step": next_order},
            ))
        else:
            expense.status = ExpenseStatus.approved
            expense.finalized_at = now
            next_approvers = None
            emit(ChangeRecord(
                expense_id=expense.id, company_id=expense.company_id,
                old_status=old_status.value, new_status=expense.status.value,
                actor_id=actor, at=now,
                reason=f"Final step {current} approved",
                details={"step": current, "approver_id": str(approver_id)},
            ))

    else:
        next_approvers = [r.approver_id for r in wave_rows if r.action == ApprovalAction.pending]

    _commit(db, expense.id)

    logger.info(
        "Approval action: expense=%s approver=%s action=%s verdict=%s status=%s step=%s",
        expense.id, approver_id, action.value, verdict.value, expense.status.value,
        expense.current_approval_step,
    )
    return ActionResult(
        expense_id=expense.id,
        status=expense.status,
        next_approvers=next_approvers,
        version=expense.version,
    )


# ─── Queries ───

def get_approval_state(db: Session, expense_id: uuid.UUID) -> ApprovalState:
    """Return status, the active wave and the full decision history of an expense."""
    expense = db.execute(
        select(Expense).where(Expense.id == expense_id)
    ).scalars().first()
    if expense is None:
        raise ExpenseNotFoundError(expense_id)

    rows = _plan_rows(db, expense.id, refresh=False)
    in_progress = expense.status == ExpenseStatus.in_progress
    current = expense.current_approval_step if in_progress else None
    active = [
        r.approver_id for r in rows
        if in_progress and r.step_order == current and r.action == ApprovalAction.pending
    ]
    history = [
        HistoryEntry(
            approver_id=r.approver_id,
            step_order=r.step_order,
            action=r.action,
            comments=r.comments,
            activated_at=r.activated_at,
            actioned_at=r.actioned_at,
        )
        for r in rows
    ]
    return ApprovalState(
        expense_id=expense.id,
        status=expense.status,
        current_wave=current,
        active_approvers=active,
        version=expense.version,
        history=history,
    )


def get_pending_approvals(db: Session, approver_id: uuid.UUID) -> list[tuple[ExpenseApproval, Expense]]:
    """Return the activated, undecided slots of ``approver_id`` on in-progress expenses."""
    stmt = (
        select(ExpenseApproval, Expense)
        .join(Expense, Expense.id == ExpenseApproval.expense_id)
        .where(
            ExpenseApproval.approver_id == approver_id,
            ExpenseApproval.action == ApprovalAction.pending,
            ExpenseApproval.activated_at.is_not(None),
            ExpenseApproval.step_order == Expense.current_approval_step,
            Expense.status == ExpenseStatus.in_progress,
        )
        .order_by(ExpenseApproval.activated_at.asc())
    )
    return [(row, expense) for row, expense in db.execute(stmt).all()]


# ─── Internal helpers ───

def _lock_expense(db: Session, expense_id: uuid.UUID) -> Expense:
    expense = db.execute(
        select(Expense)
        .where(Expense.id == expense_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if expense is None:
        raise ExpenseNotFoundError(expense_id)
    return expense


def require_unsubmitted(expense: Expense) -> None:
    """Raise unless the expense is still an editable draft."""
    if expense.status.is_terminal:
        raise ExpenseFinalizedError(expense.id, expense.status.value)
    if expense.status == ExpenseStatus.in_progress:
        raise ExpenseAlreadySubmittedError(expense.id)


def _plan_rows(db: Session, expense_id: uuid.UUID, refresh: bool = True) -> list[ExpenseApproval]:
    stmt = (
        select(ExpenseApproval)
        .where(ExpenseApproval.expense_id == expense_id)
        .order_by(ExpenseApproval.step_order, ExpenseApproval.created_at)
    )
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    return list(db.execute(stmt).scalars().all())


def _stored_policy(expense: Expense) -> RulePolicy:
    if not expense.rule_snapshot:
        raise CorruptApprovalPlanError(expense.id, "no rule snapshot recorded at submission")
    try:
        policy = RulePolicy.from_snapshot(expense.rule_snapshot)
    except (KeyError, ValueError) as exc:
        raise CorruptApprovalPlanError(expense.id, f"unreadable rule snapshot ({exc})") from exc
    try:
        validate_rule_config(policy.rule_type, policy.percentage_required, policy.specific_approver_id)
    except InvalidRuleConfigurationError as exc:
        raise CorruptApprovalPlanError(expense.id, f"rule snapshot is incomplete ({exc})") from exc
    return policy


def _row_for_action(
    expense: Expense,
    rows: list[ExpenseApproval],
    wave_rows: list[ExpenseApproval],
    approver_id: uuid.UUID,
) -> ExpenseApproval:
    mine = [r for r in rows if r.approver_id == approver_id]
    if not mine:
        raise InvalidApproverError(expense.id, approver_id, "not part of the approval plan")

    row = next((r for r in wave_rows if r.approver_id == approver_id), None)
    if row is None:
        already = any(
            r.step_order < expense.current_approval_step and r.action != ApprovalAction.pending
            for r in mine
        )
        if already:
            raise AlreadyActionedError(expense.id, approver_id)
        raise InvalidApproverError(expense.id, approver_id, "not in the active approval step")

    if row.action != ApprovalAction.pending:
        raise AlreadyActionedError(expense.id, approver_id)
    return row


def _company_users(db: Session, company_id: uuid.UUID) -> dict[uuid.UUID, User]:
    users = db.execute(select(User).where(User.company_id == company_id)).scalars().all()
    return {u.id: u for u in users}


def _commit(db: Session, expense_id: uuid.UUID) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("Concurrent modification of expense %s: %s", expense_id, exc)
        raise ConcurrentModificationError(expense_id) from exc
