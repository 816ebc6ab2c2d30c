"""Unit tests for approval plan resolution and manager-chain checks."""
import uuid

import pytest

from app.models.approval_rule import RuleType
from app.workflow.errors import ManagerCycleDetectedError, UnresolvableApproverError
from app.workflow.policy import RulePolicy
from app.workflow.resolver import (
    MANAGER_STEP_ORDER,
    PlannedStep,
    group_waves,
    manager_chain,
    resolve,
    validate_manager_assignment,
)

COMPANY = uuid.uuid4()


# ─── Fixtures ─────────────────────────────────────────────────────────────────

class FakeUser:
    """Minimal user stub; the resolver only reads these attributes."""

    def __init__(self, manager=None, is_manager_approver=False, is_active=True, company_id=COMPANY):
        self.id = uuid.uuid4()
        self.company_id = company_id
        self.manager_id = manager.id if manager else None
        self.is_manager_approver = is_manager_approver
        self.is_active = is_active
        self.deleted_at = None


class FakeStep:
    def __init__(self, step_order, approver=None, approver_role=None):
        self.step_order = step_order
        self.approver_id = approver.id if approver else None
        self.approver_role = approver_role


def _arena(*users):
    return {u.id: u for u in users}


def _policy(**kwargs):
    defaults = {"rule_id": uuid.uuid4(), "version": 1, "rule_type": RuleType.percentage, "percentage_required": 100}
    defaults.update(kwargs)
    return RulePolicy(**defaults)


# ─── Manager chain ────────────────────────────────────────────────────────────

def test_manager_chain_walks_up_nearest_first():
    ceo = FakeUser()
    vp = FakeUser(manager=ceo)
    emp = FakeUser(manager=vp)
    assert manager_chain(_arena(ceo, vp, emp), emp.id) == [vp.id, ceo.id]


def test_manager_chain_detects_cycle():
    a = FakeUser()
    b = FakeUser(manager=a)
    a.manager_id = b.id
    with pytest.raises(ManagerCycleDetectedError):
        manager_chain(_arena(a, b), a.id)


def test_validate_manager_assignment_rejects_self():
    u = FakeUser()
    with pytest.raises(ManagerCycleDetectedError):
        validate_manager_assignment(_arena(u), u.id, u.id)


def test_validate_manager_assignment_rejects_loop():
    boss = FakeUser()
    report = FakeUser(manager=boss)
    with pytest.raises(ManagerCycleDetectedError):
        validate_manager_assignment(_arena(boss, report), boss.id, report.id)


def test_validate_manager_assignment_rejects_inactive_or_unknown_manager():
    u = FakeUser()
    gone = FakeUser(is_active=False)
    with pytest.raises(UnresolvableApproverError):
        validate_manager_assignment(_arena(u, gone), u.id, gone.id)
    with pytest.raises(UnresolvableApproverError):
        validate_manager_assignment(_arena(u), u.id, uuid.uuid4())


# ─── Plan resolution ──────────────────────────────────────────────────────────

def test_manager_first_then_template_waves():
    mgr = FakeUser()
    emp = FakeUser(manager=mgr)
    fin, cfo = FakeUser(), FakeUser()
    steps = [FakeStep(10, fin), FakeStep(20, cfo)]

    plan = resolve(emp, _policy(is_manager_approver=True), steps, _arena(mgr, emp, fin, cfo))

    assert plan == [
        PlannedStep(MANAGER_STEP_ORDER, mgr.id),
        PlannedStep(1, fin.id),
        PlannedStep(2, cfo.id),
    ]


def test_employee_flag_also_puts_manager_first():
    mgr = FakeUser()
    emp = FakeUser(manager=mgr, is_manager_approver=True)
    fin = FakeUser()
    plan = resolve(emp, _policy(), [FakeStep(1, fin)], _arena(mgr, emp, fin))
    assert plan[0] == PlannedStep(MANAGER_STEP_ORDER, mgr.id)


def test_steps_sharing_an_order_form_one_wave():
    emp = FakeUser()
    a, b, c = FakeUser(), FakeUser(), FakeUser()
    steps = [FakeStep(1, a), FakeStep(1, b), FakeStep(2, c)]
    plan = resolve(emp, _policy(), steps, _arena(emp, a, b, c))
    assert group_waves(plan) == [(1, [a.id, b.id]), (2, [c.id])]


def test_manager_role_step_resolves_to_direct_manager():
    mgr = FakeUser()
    emp = FakeUser(manager=mgr)
    plan = resolve(emp, _policy(), [FakeStep(1, approver_role="manager")], _arena(mgr, emp))
    assert plan == [PlannedStep(1, mgr.id)]


def test_manager_role_step_without_manager_is_unresolvable():
    emp = FakeUser()
    with pytest.raises(UnresolvableApproverError):
        resolve(emp, _policy(), [FakeStep(1, approver_role="manager")], _arena(emp))


def test_manager_also_in_template_collapses_consecutive_duplicate():
    mgr = FakeUser()
    emp = FakeUser(manager=mgr)
    cfo = FakeUser()
    steps = [FakeStep(1, mgr), FakeStep(2, cfo)]
    plan = resolve(emp, _policy(is_manager_approver=True), steps, _arena(mgr, emp, cfo))
    assert plan == [PlannedStep(MANAGER_STEP_ORDER, mgr.id), PlannedStep(2, cfo.id)]


@pytest.mark.parametrize("first_wave_order", [(0, 1), (1, 0)])
def test_plan_does_not_depend_on_step_order_within_a_wave(first_wave_order):
    emp = FakeUser()
    a, b, c = FakeUser(), FakeUser(), FakeUser()
    first_wave = [FakeStep(1, a), FakeStep(1, b)]
    steps = [first_wave[i] for i in first_wave_order] + [FakeStep(2, a), FakeStep(2, c)]
    plan = resolve(emp, _policy(), steps, _arena(emp, a, b, c))
    assert [(order, set(ids)) for order, ids in group_waves(plan)] == [(1, {a.id, b.id}), (2, {c.id})]


def test_approver_repeated_across_a_run_of_waves_keeps_only_first():
    emp = FakeUser()
    a, b = FakeUser(), FakeUser()
    steps = [FakeStep(1, a), FakeStep(2, a), FakeStep(3, a), FakeStep(4, b), FakeStep(5, a)]
    plan = resolve(emp, _policy(), steps, _arena(emp, a, b))
    assert plan == [PlannedStep(1, a.id), PlannedStep(4, b.id), PlannedStep(5, a.id)]


def test_approver_listed_twice_in_one_wave_counts_once():
    emp = FakeUser()
    a, b = FakeUser(), FakeUser()
    plan = resolve(emp, _policy(), [FakeStep(1, a), FakeStep(1, b), FakeStep(1, a)], _arena(emp, a, b))
    assert group_waves(plan) == [(1, [a.id, b.id])]


def test_submitter_is_excluded_from_own_plan():
    mgr = FakeUser()
    emp = FakeUser(manager=mgr)
    steps = [FakeStep(1, emp), FakeStep(2, mgr)]
    plan = resolve(emp, _policy(), steps, _arena(mgr, emp))
    assert plan == [PlannedStep(2, mgr.id)]


def test_specific_approver_gets_final_wave_when_not_in_template():
    emp = FakeUser()
    fin, cfo = FakeUser(), FakeUser()
    policy = _policy(rule_type=RuleType.specific_approver, percentage_required=None, specific_approver_id=cfo.id)
    plan = resolve(emp, policy, [FakeStep(1, fin)], _arena(emp, fin, cfo))
    assert plan == [PlannedStep(1, fin.id), PlannedStep(2, cfo.id)]


def test_specific_approver_without_template_plans_only_them():
    emp = FakeUser()
    cfo = FakeUser()
    policy = _policy(rule_type=RuleType.specific_approver, percentage_required=None, specific_approver_id=cfo.id)
    assert resolve(emp, policy, [], _arena(emp, cfo)) == [PlannedStep(1, cfo.id)]


def test_non_sequential_rule_collapses_to_one_parallel_wave():
    mgr = FakeUser()
    emp = FakeUser(manager=mgr)
    a, b = FakeUser(), FakeUser()
    steps = [FakeStep(1, a), FakeStep(2, b), FakeStep(3, a)]
    plan = resolve(emp, _policy(is_manager_approver=True, approvers_sequence=False), steps, _arena(mgr, emp, a, b))
    assert group_waves(plan) == [(1, [mgr.id, a.id, b.id])]


def test_inactive_template_approver_is_unresolvable():
    emp = FakeUser()
    gone = FakeUser(is_active=False)
    with pytest.raises(UnresolvableApproverError):
        resolve(emp, _policy(), [FakeStep(1, gone)], _arena(emp, gone))


def test_approver_from_another_company_is_unresolvable():
    emp = FakeUser()
    outsider = FakeUser(company_id=uuid.uuid4())
    with pytest.raises(UnresolvableApproverError):
        resolve(emp, _policy(), [FakeStep(1, outsider)], _arena(emp, outsider))


def test_plan_with_no_approvers_is_unresolvable():
    emp = FakeUser()
    with pytest.raises(UnresolvableApproverError):
        resolve(emp, _policy(), [FakeStep(1, emp)], _arena(emp))


def test_cyclic_chain_of_submitter_is_reported():
    a = FakeUser()
    b = FakeUser(manager=a)
    a.manager_id = b.id
    with pytest.raises(ManagerCycleDetectedError):
        resolve(a, _policy(is_manager_approver=True), [], _arena(a, b))
