"""Decision evaluator: turns one wave's recorded actions into a verdict.

Pure function of (policy, wave actions). All percentage comparisons are
done by integer cross-multiplication, so 2 of 3 approvals against a 60%
threshold is 200 >= 180 and never depends on float rounding.
"""
import enum
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from app.models.approval import ApprovalAction
from app.models.approval_rule import RuleType
from app.workflow.policy import RulePolicy


class Verdict(str, enum.Enum):
    advance = "advance"
    reject = "reject"
    pending = "pending"


class _Condition(enum.Enum):
    met = "met"
    impossible = "impossible"
    open = "open"


@dataclass(frozen=True)
class WaveAction:
    approver_id: uuid.UUID
    action: ApprovalAction


def evaluate(policy: RulePolicy, wave_actions: Sequence[WaveAction]) -> Verdict:
    """Return advance, reject or pending for the wave.

    percentage: advance once approved/total reaches the threshold, reject
        once rejections make the threshold unreachable.
    specific_approver: the designated approver decides; other members are
        informational. A wave without the designated approver (e.g. the
        manager-first wave of a sequential plan) needs every member.
    hybrid: is_hybrid=True combines both conditions with OR, otherwise AND.
        Only the percentage condition applies to waves without the
        designated approver.
    """
    if not wave_actions:
        raise ValueError("Cannot evaluate an empty wave.")

    approved = sum(1 for a in wave_actions if a.action == ApprovalAction.approved)
    rejected = sum(1 for a in wave_actions if a.action == ApprovalAction.rejected)
    total = len(wave_actions)
    specific = _specific_condition(policy.specific_approver_id, wave_actions)

    if policy.rule_type == RuleType.percentage:
        condition = _percentage_condition(policy.percentage_required, approved, rejected, total)

    elif policy.rule_type == RuleType.specific_approver:
        if specific is None:
            condition = _percentage_condition(100, approved, rejected, total)
        else:
            condition = specific

    elif policy.rule_type == RuleType.hybrid:
        pct = _percentage_condition(policy.percentage_required, approved, rejected, total)
        if specific is None:
            condition = pct
        elif policy.is_hybrid:
            condition = _either(pct, specific)
        else:
            condition = _both(pct, specific)

    else:
        raise ValueError(f"Unknown rule type {policy.rule_type!r}")

    return {
        _Condition.met: Verdict.advance,
        _Condition.impossible: Verdict.reject,
        _Condition.open: Verdict.pending,
    }[condition]


# ─── Conditions ───

def _percentage_condition(required: int | None, approved: int, rejected: int, total: int) -> _Condition:
    if required is None:
        raise ValueError("Percentage condition requires percentage_required.")
    if approved * 100 >= required * total:
        return _Condition.met
    # Remaining members can no longer lift approvals to the threshold.
    if rejected * 100 > (100 - required) * total:
        return _Condition.impossible
    return _Condition.open


def _specific_condition(
    approver_id: uuid.UUID | None, wave_actions: Sequence[WaveAction]
) -> _Condition | None:
    if approver_id is None:
        return None
    for a in wave_actions:
        if a.approver_id == approver_id:
            if a.action == ApprovalAction.approved:
                return _Condition.met
            if a.action == ApprovalAction.rejected:
                return _Condition.impossible
            return _Condition.open
    return None


def _either(a: _Condition, b: _Condition) -> _Condition:
    if _Condition.met in (a, b):
        return _Condition.met
    if a is _Condition.impossible and b is _Condition.impossible:
        return _Condition.impossible
    return _Condition.open


def _both(a: _Condition, b: _Condition) -> _Condition:
    if _Condition.impossible in (a, b):
        return _Condition.impossible
    if a is _Condition.met and b is _Condition.met:
        return _Condition.met
    return _Condition.open
