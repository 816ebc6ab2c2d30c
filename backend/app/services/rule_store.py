"""Rule store: picks the approval rule that governs an expense amount.

Functions take a sync SQLAlchemy Session, like the rest of the approval
service layer.
"""
import logging
import uuid
from collections.abc import Sequence
from decimal import Decimal

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from app.models.approval_rule import ApprovalRule
from app.workflow.errors import NoMatchingRuleError

logger = logging.getLogger(__name__)


def match_rule(db: Session, company_id: uuid.UUID, amount: Decimal) -> ApprovalRule:
    """Return the active rule of ``company_id`` whose threshold range contains ``amount``.

    Thresholds are inclusive and a null bound is unbounded. When several
    rules overlap, the narrowest range wins and ties go to the most recently
    created rule.

    Raises:
        NoMatchingRuleError: no active rule covers the amount.
    """
    stmt = (
        select(ApprovalRule)
        .options(selectinload(ApprovalRule.steps))
        .where(
            and_(
                ApprovalRule.company_id == company_id,
                ApprovalRule.is_active.is_(True),
                or_(ApprovalRule.min_amount_threshold.is_(None), ApprovalRule.min_amount_threshold <= amount),
                or_(ApprovalRule.max_amount_threshold.is_(None), ApprovalRule.max_amount_threshold >= amount),
            )
        )
    )
    candidates = list(db.execute(stmt).scalars().all())
    rule = select_rule(candidates)
    if rule is None:
        logger.info("match_rule: no active rule for company=%s amount=%s", company_id, amount)
        raise NoMatchingRuleError(company_id, amount)

    if len(candidates) > 1:
        logger.info(
            "match_rule: %d overlapping rules for company=%s amount=%s, picked %s (%s)",
            len(candidates), company_id, amount, rule.id, rule.name,
        )
    return rule


def select_rule(candidates: Sequence[ApprovalRule]) -> ApprovalRule | None:
    """Apply the precedence order to rules already known to cover the amount."""
    if not candidates:
        return None
    newest_first = sorted(candidates, key=lambda r: r.created_at, reverse=True)
    return min(newest_first, key=_range_width_key)


def _range_width_key(rule: ApprovalRule) -> tuple[int, Decimal]:
    low, high = rule.min_amount_threshold, rule.max_amount_threshold
    unbounded_ends = (low is None) + (high is None)
    if unbounded_ends:
        return unbounded_ends, Decimal(0)
    return 0, Decimal(high) - Decimal(low)
