"""Unit tests for the wave decision evaluator (pure, no DB)."""
import uuid

import pytest

from app.models.approval import ApprovalAction
from app.models.approval_rule import RuleType
from app.workflow.evaluator import Verdict, WaveAction, evaluate
from app.workflow.policy import RulePolicy

A, R, P = ApprovalAction.approved, ApprovalAction.rejected, ApprovalAction.pending


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _wave(*actions: ApprovalAction) -> list[WaveAction]:
    return [WaveAction(uuid.uuid4(), a) for a in actions]


def _pct(required: int) -> RulePolicy:
    return RulePolicy(rule_id=None, version=1, rule_type=RuleType.percentage, percentage_required=required)


def _specific(approver_id: uuid.UUID) -> RulePolicy:
    return RulePolicy(
        rule_id=None, version=1, rule_type=RuleType.specific_approver, specific_approver_id=approver_id
    )


def _hybrid(required: int, approver_id: uuid.UUID, is_hybrid: bool) -> RulePolicy:
    return RulePolicy(
        rule_id=None,
        version=1,
        rule_type=RuleType.hybrid,
        percentage_required=required,
        specific_approver_id=approver_id,
        is_hybrid=is_hybrid,
    )


# ─── Percentage ───────────────────────────────────────────────────────────────

def test_two_of_three_meets_sixty_percent():
    """200 >= 180: two approvals out of three clear a 60% threshold."""
    assert evaluate(_pct(60), _wave(A, A, P)) == Verdict.advance


def test_one_of_three_is_still_pending_at_sixty_percent():
    assert evaluate(_pct(60), _wave(A, P, P)) == Verdict.pending


def test_rejections_that_make_threshold_unreachable_reject():
    """Two rejections of three leave at most 33% approvals, below 60%."""
    assert evaluate(_pct(60), _wave(R, R, P)) == Verdict.reject


def test_single_rejection_under_sixty_percent_stays_pending():
    assert evaluate(_pct(60), _wave(R, P, P)) == Verdict.pending


def test_hundred_percent_rejects_on_first_rejection():
    assert evaluate(_pct(100), _wave(A, R, P)) == Verdict.reject


def test_zero_percent_advances_immediately():
    assert evaluate(_pct(0), _wave(P, P)) == Verdict.advance


def test_exact_boundary_fifty_percent_of_two():
    assert evaluate(_pct(50), _wave(A, P)) == Verdict.advance


def test_single_approver_fifty_percent_rejection_rejects():
    """1 rejection of 1: 100 > 50, so approval can no longer reach 50%."""
    assert evaluate(_pct(50), _wave(R)) == Verdict.reject


# ─── Specific approver ────────────────────────────────────────────────────────

def test_specific_approver_approval_advances_regardless_of_others():
    cfo = uuid.uuid4()
    wave = [WaveAction(cfo, A), *_wave(R, P)]
    assert evaluate(_specific(cfo), wave) == Verdict.advance


def test_specific_approver_rejection_rejects():
    cfo = uuid.uuid4()
    wave = [WaveAction(cfo, R), *_wave(A, A)]
    assert evaluate(_specific(cfo), wave) == Verdict.reject


def test_others_deciding_without_specific_approver_stays_pending():
    cfo = uuid.uuid4()
    wave = [WaveAction(cfo, P), *_wave(A, A)]
    assert evaluate(_specific(cfo), wave) == Verdict.pending


def test_wave_without_specific_approver_needs_everyone():
    """E.g. the manager-first wave before the designated approver's wave."""
    cfo = uuid.uuid4()
    assert evaluate(_specific(cfo), _wave(A)) == Verdict.advance
    assert evaluate(_specific(cfo), _wave(R)) == Verdict.reject
    assert evaluate(_specific(cfo), _wave(A, P)) == Verdict.pending


# ─── Hybrid ───────────────────────────────────────────────────────────────────

def test_hybrid_or_advances_on_specific_approver_alone():
    cfo = uuid.uuid4()
    wave = [WaveAction(cfo, A), *_wave(P, P)]
    assert evaluate(_hybrid(60, cfo, is_hybrid=True), wave) == Verdict.advance


def test_hybrid_or_advances_on_percentage_alone():
    cfo = uuid.uuid4()
    wave = [WaveAction(cfo, P), *_wave(A, A)]
    assert evaluate(_hybrid(60, cfo, is_hybrid=True), wave) == Verdict.advance


def test_hybrid_or_rejects_only_when_both_conditions_fail():
    cfo = uuid.uuid4()
    assert evaluate(_hybrid(60, cfo, is_hybrid=True), [WaveAction(cfo, R), *_wave(P, P)]) == Verdict.pending
    assert evaluate(_hybrid(60, cfo, is_hybrid=True), [WaveAction(cfo, R), *_wave(R, P)]) == Verdict.reject


def test_hybrid_and_needs_both_conditions():
    cfo = uuid.uuid4()
    policy = _hybrid(60, cfo, is_hybrid=False)
    assert evaluate(policy, [WaveAction(cfo, A), *_wave(P, P)]) == Verdict.pending
    assert evaluate(policy, [WaveAction(cfo, A), *_wave(A, P)]) == Verdict.advance


def test_hybrid_and_rejects_when_specific_approver_rejects():
    cfo = uuid.uuid4()
    policy = _hybrid(60, cfo, is_hybrid=False)
    assert evaluate(policy, [WaveAction(cfo, R), *_wave(A, A)]) == Verdict.reject


def test_hybrid_wave_without_specific_approver_uses_percentage():
    cfo = uuid.uuid4()
    policy = _hybrid(50, cfo, is_hybrid=False)
    assert evaluate(policy, _wave(A, P)) == Verdict.advance


# ─── Guards ───────────────────────────────────────────────────────────────────

def test_empty_wave_raises():
    with pytest.raises(ValueError):
        evaluate(_pct(60), [])


def test_percentage_rule_without_threshold_raises():
    policy = RulePolicy(rule_id=None, version=1, rule_type=RuleType.percentage)
    with pytest.raises(ValueError):
        evaluate(policy, _wave(A))
