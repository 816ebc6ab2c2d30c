"""Approver resolver: expands a rule into the concrete plan for one expense.

The company's users are passed in as an arena (``dict[user_id, user]``) so
manager chains are walked by id lookups with a depth cap instead of lazy
relationship loads that could spin forever on a cyclic chain.
"""
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from app.models.approval_rule import MANAGER_ROLE
from app.workflow.errors import ManagerCycleDetectedError, UnresolvableApproverError
from app.workflow.policy import RulePolicy

logger = logging.getLogger(__name__)

MANAGER_STEP_ORDER = 0
PARALLEL_STEP_ORDER = 1


@dataclass(frozen=True)
class PlannedStep:
    step_order: int
    approver_id: uuid.UUID


# ─── Manager chain ───

def manager_chain(users: Mapping[uuid.UUID, Any], user_id: uuid.UUID) -> list[uuid.UUID]:
    """Return the ids above ``user_id``, nearest manager first.

    Raises ManagerCycleDetectedError if the chain revisits a user or runs
    longer than the number of users in the arena.
    """
    chain: list[uuid.UUID] = []
    seen = {user_id}
    current = users.get(user_id)
    limit = len(users)
    while current is not None and current.manager_id is not None:
        manager_id = current.manager_id
        if manager_id in seen or len(chain) >= limit:
            raise ManagerCycleDetectedError(user_id)
        seen.add(manager_id)
        chain.append(manager_id)
        current = users.get(manager_id)
    return chain


def validate_manager_assignment(
    users: Mapping[uuid.UUID, Any],
    user_id: uuid.UUID,
    manager_id: uuid.UUID | None,
) -> None:
    """Check that ``manager_id`` can become the manager of ``user_id``.

    ``users`` holds the company's users, so a manager outside the company is
    simply absent from it.
    """
    if manager_id is None:
        return
    if manager_id == user_id:
        raise ManagerCycleDetectedError(user_id)
    manager = users.get(manager_id)
    if manager is None or not manager.is_active:
        raise UnresolvableApproverError(
            f"Manager {manager_id} is not an active user of this company.", manager_id
        )
    if user_id in manager_chain(users, manager_id):
        raise ManagerCycleDetectedError(user_id)


# ─── Plan resolution ───

def resolve(
    employee: Any,
    policy: RulePolicy,
    template_steps: Sequence[Any],
    users: Mapping[uuid.UUID, Any],
) -> list[PlannedStep]:
    """Build the approval plan for an expense submitted by ``employee``.

    1. Manager-first (rule flag or the employee's own flag): the direct
       manager becomes wave 0.
    2. Template steps follow, renumbered 1..n by distinct step_order; steps
       sharing a step_order share a wave. Without template steps a
       specific-approver/hybrid rule plans just the designated approver. A
       designated approver missing from the template gets a final wave.
    3. The submitter never approves their own expense. An approver listed
       twice in one wave counts once, and an approver who also sits in the
       wave right before is dropped from the later one.
    4. Non-sequential rules collapse everything into one parallel wave.
    """
    manager_chain(users, employee.id)
    manager_id = employee.manager_id
    entries: list[PlannedStep] = []

    if (policy.is_manager_approver or employee.is_manager_approver) and manager_id is not None:
        _require_active(users, manager_id, employee.company_id)
        entries.append(PlannedStep(MANAGER_STEP_ORDER, manager_id))

    distinct_orders = sorted({s.step_order for s in template_steps})
    wave_numbers = {order: idx for idx, order in enumerate(distinct_orders, start=1)}
    template_approvers: set[uuid.UUID] = set()
    for step in sorted(template_steps, key=lambda s: s.step_order):
        approver_id = step.approver_id
        if approver_id is None:
            if (step.approver_role or "").lower() != MANAGER_ROLE:
                raise UnresolvableApproverError(
                    f"Approval step {step.step_order} names neither an approver nor the manager role."
                )
            if manager_id is None:
                raise UnresolvableApproverError(
                    f"Approval step {step.step_order} requires the submitter's manager, "
                    f"but user {employee.id} has none."
                )
            approver_id = manager_id
        _require_active(users, approver_id, employee.company_id)
        template_approvers.add(approver_id)
        entries.append(PlannedStep(wave_numbers[step.step_order], approver_id))

    designated = policy.specific_approver_id if policy.rule_type.uses_specific_approver else None
    if designated is not None and designated not in template_approvers:
        _require_active(users, designated, employee.company_id)
        entries.append(PlannedStep(len(distinct_orders) + 1, designated))

    plan = _collapse(e for e in entries if e.approver_id != employee.id)

    if not policy.approvers_sequence:
        seen: set[uuid.UUID] = set()
        parallel: list[PlannedStep] = []
        for entry in plan:
            if entry.approver_id not in seen:
                seen.add(entry.approver_id)
                parallel.append(PlannedStep(PARALLEL_STEP_ORDER, entry.approver_id))
        plan = parallel

    if not plan:
        raise UnresolvableApproverError(
            f"Rule {policy.rule_id} resolves to no approvers for user {employee.id}."
        )

    logger.debug("Resolved plan for employee=%s rule=%s: %s", employee.id, policy.rule_id, plan)
    return plan


def group_waves(plan: Sequence[Any]) -> list[tuple[int, list[uuid.UUID]]]:
    """Group plan entries (or ExpenseApproval rows) into ordered waves."""
    waves: dict[int, list[uuid.UUID]] = {}
    for entry in plan:
        waves.setdefault(entry.step_order, []).append(entry.approver_id)
    return sorted(waves.items())


# ─── Internal helpers ───

def _require_active(users: Mapping[uuid.UUID, Any], approver_id: uuid.UUID, company_id: uuid.UUID) -> None:
    user = users.get(approver_id)
    if user is None or user.company_id != company_id:
        raise UnresolvableApproverError(f"Approver {approver_id} does not exist in this company.", approver_id)
    if not user.is_active or getattr(user, "deleted_at", None) is not None:
        raise UnresolvableApproverError(f"Approver {approver_id} is no longer active.", approver_id)


def _collapse(entries) -> list[PlannedStep]:
    """Drop repeats within a wave and approvers already in the preceding wave."""
    waves: dict[int, list[uuid.UUID]] = {}
    for entry in entries:
        members = waves.setdefault(entry.step_order, [])
        if entry.approver_id not in members:
            members.append(entry.approver_id)

    plan: list[PlannedStep] = []
    previous: list[uuid.UUID] = []
    for step_order, members in sorted(waves.items()):
        plan.extend(PlannedStep(step_order, a) for a in members if a not in previous)
        previous = members
    return plan
