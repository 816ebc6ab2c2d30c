"""Tests for approval rule matching by amount."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from app.models.approval_rule import ApprovalRule, RuleType
from app.models.company import Company
from app.schemas.approval_rule import ApprovalRuleUpdate, ApprovalStepIn
from app.services.rule_store import match_rule, select_rule
from app.workflow.errors import InvalidRuleConfigurationError, NoMatchingRuleError
from app.workflow.policy import validate_rule_config, validate_steps
from factories import make_rule, make_user


def _pct_rule(db, company, name, min_amount=None, max_amount=None, **kwargs):
    return make_rule(
        db, company, RuleType.percentage, name=name,
        min_amount=min_amount, max_amount=max_amount, percentage=50, **kwargs,
    )


# ─── match_rule ───────────────────────────────────────────────────────────────

def test_bounds_are_inclusive(db, company):
    rule = _pct_rule(db, company, "Mid", min_amount="100.00", max_amount="500.00")
    assert match_rule(db, company.id, Decimal("100.00")).id == rule.id
    assert match_rule(db, company.id, Decimal("500.00")).id == rule.id


def test_null_bounds_are_unbounded(db, company):
    rule = _pct_rule(db, company, "Catch-all")
    assert match_rule(db, company.id, Decimal("0.01")).id == rule.id
    assert match_rule(db, company.id, Decimal("9999999.99")).id == rule.id


def test_narrowest_overlapping_range_wins(db, company):
    _pct_rule(db, company, "Catch-all")
    _pct_rule(db, company, "Wide", min_amount="0", max_amount="10000")
    narrow = _pct_rule(db, company, "Narrow", min_amount="1000", max_amount="2000")
    assert match_rule(db, company.id, Decimal("1500")).id == narrow.id


def test_bounded_range_beats_half_open_range(db, company):
    _pct_rule(db, company, "Above 100", min_amount="100")
    bounded = _pct_rule(db, company, "100 to 1M", min_amount="100", max_amount="1000000")
    assert match_rule(db, company.id, Decimal("200")).id == bounded.id


def test_inactive_rules_are_ignored(db, company):
    _pct_rule(db, company, "Old", is_active=False)
    with pytest.raises(NoMatchingRuleError):
        match_rule(db, company.id, Decimal("50"))


def test_no_rule_in_range_raises(db, company):
    _pct_rule(db, company, "Big only", min_amount="1000")
    with pytest.raises(NoMatchingRuleError) as exc_info:
        match_rule(db, company.id, Decimal("999.99"))
    assert exc_info.value.status_code == 422


def test_rules_of_other_companies_are_ignored(db, company):
    other = Company(name="Other", country="US", currency="USD")
    db.add(other)
    db.commit()
    _pct_rule(db, other, "Theirs")
    with pytest.raises(NoMatchingRuleError):
        match_rule(db, company.id, Decimal("10"))


# ─── select_rule ──────────────────────────────────────────────────────────────

def _candidate(low, high, created_at):
    rule = MagicMock()
    rule.min_amount_threshold = Decimal(low) if low is not None else None
    rule.max_amount_threshold = Decimal(high) if high is not None else None
    rule.created_at = created_at
    return rule


def test_equal_width_tie_goes_to_newest_rule():
    now = datetime.now(timezone.utc)
    older = _candidate("0", "100", now - timedelta(days=1))
    newer = _candidate("50", "150", now)
    assert select_rule([older, newer]) is newer
    assert select_rule([newer, older]) is newer


def test_select_rule_with_no_candidates_returns_none():
    assert select_rule([]) is None


# ─── validate_rule_config ─────────────────────────────────────────────────────

def test_percentage_rule_requires_threshold():
    with pytest.raises(InvalidRuleConfigurationError):
        validate_rule_config(RuleType.percentage, None, None)


def test_percentage_out_of_range_is_rejected():
    with pytest.raises(InvalidRuleConfigurationError):
        validate_rule_config(RuleType.percentage, 120, None)


def test_specific_rule_requires_approver():
    with pytest.raises(InvalidRuleConfigurationError):
        validate_rule_config(RuleType.specific_approver, None, None)


def test_hybrid_rule_requires_both_fields():
    with pytest.raises(InvalidRuleConfigurationError):
        validate_rule_config(RuleType.hybrid, 60, None)
    with pytest.raises(InvalidRuleConfigurationError):
        validate_rule_config(RuleType.hybrid, None, uuid.uuid4())
    validate_rule_config(RuleType.hybrid, 60, uuid.uuid4())


def test_min_above_max_is_rejected():
    with pytest.raises(InvalidRuleConfigurationError):
        validate_rule_config(RuleType.percentage, 50, None, Decimal("10"), Decimal("5"))


def test_step_with_unknown_role_is_rejected():
    with pytest.raises(InvalidRuleConfigurationError):
        validate_steps([ApprovalStepIn(step_order=1, approver_role="Finance")])


def test_manager_role_and_named_approver_steps_are_accepted():
    validate_steps([
        ApprovalStepIn(step_order=1, approver_role="Manager"),
        ApprovalStepIn(step_order=2, approver_id=uuid.uuid4(), approver_role="Finance"),
    ])


# ─── Partial updates ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("field", ["name", "rule_type", "is_hybrid", "approvers_sequence", "steps"])
def test_update_refuses_null_for_required_fields(field):
    with pytest.raises(ValidationError):
        ApprovalRuleUpdate.model_validate({field: None})


def test_update_may_clear_thresholds_and_designated_approver():
    update = ApprovalRuleUpdate.model_validate(
        {"max_amount_threshold": None, "specific_approver_id": None, "percentage_required": None}
    )
    assert update.model_dump(exclude_unset=True) == {
        "max_amount_threshold": None,
        "specific_approver_id": None,
        "percentage_required": None,
    }


# ─── Template step order ──────────────────────────────────────────────────────

def test_steps_load_in_wave_order(db, company):
    a, b, c = (make_user(db, company, n) for n in ("A", "B", "C"))
    rule = make_rule(db, company, RuleType.percentage, percentage=50, steps=[(2, c), (1, b), (1, a)])
    db.expire_all()

    loaded = db.get(ApprovalRule, rule.id)
    assert [s.step_order for s in loaded.steps] == [1, 1, 2]
