"""Approval rule endpoints (ADMIN).

Editing a rule bumps its version. Expenses already in approval keep the
policy snapshot taken when they were submitted.
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.deps import RequestContext, require_admin
from app.db.session import get_session
from app.models.approval_rule import ApprovalRule, ApprovalStep, RuleType
from app.models.user import User
from app.schemas.approval_rule import (
    ApprovalRuleIn,
    ApprovalRuleOut,
    ApprovalRuleUpdate,
    ApprovalStepIn,
)
from app.services import audit as audit_svc
from app.workflow.errors import InvalidRuleConfigurationError
from app.workflow.policy import validate_rule_config, validate_steps

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Helpers ───

async def _load_rule(db: AsyncSession, rule_id: uuid.UUID, company_id: uuid.UUID) -> ApprovalRule:
    result = await db.execute(
        select(ApprovalRule)
        .options(selectinload(ApprovalRule.steps))
        .where(ApprovalRule.id == rule_id, ApprovalRule.company_id == company_id)
        .execution_options(populate_existing=True)
    )
    rule = result.scalars().first()
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found.")
    return rule


async def _check_approvers(
    db: AsyncSession,
    company_id: uuid.UUID,
    specific_approver_id: uuid.UUID | None,
    steps: list[ApprovalStepIn],
) -> None:
    """Every referenced approver must be an active user of the company."""
    wanted = {s.approver_id for s in steps if s.approver_id is not None}
    if specific_approver_id is not None:
        wanted.add(specific_approver_id)
    if not wanted:
        return
    result = await db.execute(
        select(User.id).where(
            User.id.in_(wanted),
            User.company_id == company_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    missing = wanted - set(result.scalars().all())
    if missing:
        raise InvalidRuleConfigurationError(
            f"Approvers not active in this company: {', '.join(sorted(str(m) for m in missing))}"
        )


def _build_steps(steps: list[ApprovalStepIn]) -> list[ApprovalStep]:
    return [
        ApprovalStep(step_order=s.step_order, approver_id=s.approver_id, approver_role=s.approver_role)
        for s in steps
    ]


# ─── Endpoints ───

@router.get(
    "",
    response_model=list[ApprovalRuleOut],
    summary="List active approval rules (ADMIN)",
)
async def list_rules(
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    result = await db.execute(
        select(ApprovalRule)
        .options(selectinload(ApprovalRule.steps))
        .where(ApprovalRule.company_id == ctx.company_id, ApprovalRule.is_active.is_(True))
        .order_by(ApprovalRule.min_amount_threshold, ApprovalRule.created_at)
    )
    return [ApprovalRuleOut.model_validate(r) for r in result.scalars().all()]


@router.get("/{rule_id}", response_model=ApprovalRuleOut, summary="Get an approval rule (ADMIN)")
async def get_rule(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    return ApprovalRuleOut.model_validate(await _load_rule(db, rule_id, ctx.company_id))


@router.post(
    "",
    response_model=ApprovalRuleOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an approval rule (ADMIN)",
)
async def create_rule(
    body: ApprovalRuleIn,
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    validate_rule_config(
        body.rule_type,
        body.percentage_required,
        body.specific_approver_id,
        body.min_amount_threshold,
        body.max_amount_threshold,
    )
    validate_steps(body.steps)
    await _check_approvers(db, ctx.company_id, body.specific_approver_id, body.steps)

    rule = ApprovalRule(
        company_id=ctx.company_id,
        version=1,
        steps=_build_steps(body.steps),
        **body.model_dump(exclude={"steps"}),
    )
    db.add(rule)
    await db.flush()
    audit_svc.log(
        db,
        action="approval_rule.created",
        entity_type="approval_rule",
        entity_id=rule.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
        after=body.model_dump(mode="json"),
    )
    await db.commit()
    logger.info("Approval rule created: rule=%s type=%s company=%s", rule.id, rule.rule_type.value, ctx.company_id)
    return ApprovalRuleOut.model_validate(await _load_rule(db, rule.id, ctx.company_id))


@router.put(
    "/{rule_id}",
    response_model=ApprovalRuleOut,
    summary="Update an approval rule (ADMIN)",
)
async def update_rule(
    rule_id: uuid.UUID,
    body: ApprovalRuleUpdate,
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    rule = await _load_rule(db, rule_id, ctx.company_id)
    changes = body.model_dump(exclude_unset=True, exclude={"steps"})

    merged = {
        "rule_type": RuleType(changes.get("rule_type", rule.rule_type)),
        "percentage_required": changes.get("percentage_required", rule.percentage_required),
        "specific_approver_id": changes.get("specific_approver_id", rule.specific_approver_id),
        "min_amount": changes.get("min_amount_threshold", rule.min_amount_threshold),
        "max_amount": changes.get("max_amount_threshold", rule.max_amount_threshold),
    }
    validate_rule_config(**merged)
    validate_steps(body.steps if body.steps is not None else rule.steps)
    await _check_approvers(db, ctx.company_id, merged["specific_approver_id"], body.steps or [])

    before = ApprovalRuleOut.model_validate(rule).model_dump(mode="json")
    for field, value in changes.items():
        setattr(rule, field, value)
    if body.steps is not None:
        rule.steps = _build_steps(body.steps)
    rule.version = (rule.version or 1) + 1

    audit_svc.log(
        db,
        action="approval_rule.updated",
        entity_type="approval_rule",
        entity_id=rule.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
        before=before,
        after=body.model_dump(mode="json", exclude_unset=True),
    )
    await db.commit()
    return ApprovalRuleOut.model_validate(await _load_rule(db, rule.id, ctx.company_id))


@router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete an approval rule (ADMIN)",
)
async def delete_rule(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    ctx: Annotated[RequestContext, Depends(require_admin)],
):
    rule = await _load_rule(db, rule_id, ctx.company_id)
    rule.is_active = False
    rule.version = (rule.version or 1) + 1
    audit_svc.log(
        db,
        action="approval_rule.deactivated",
        entity_type="approval_rule",
        entity_id=rule.id,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        company_id=ctx.company_id,
    )
    await db.commit()
