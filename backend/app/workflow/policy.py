"""Rule policy value object.

A RulePolicy is the part of an ApprovalRule the engine needs to evaluate
decisions. It is captured as JSON on the expense at submission so that
editing a rule never changes the outcome of expenses already in flight.
"""
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from app.models.approval_rule import MANAGER_ROLE, RuleType
from app.workflow.errors import InvalidRuleConfigurationError


@dataclass(frozen=True)
class RulePolicy:
    rule_id: uuid.UUID | None
    version: int
    rule_type: RuleType
    percentage_required: int | None = None
    specific_approver_id: uuid.UUID | None = None
    is_hybrid: bool = False
    is_manager_approver: bool = False
    approvers_sequence: bool = True

    @classmethod
    def from_rule(cls, rule) -> "RulePolicy":
        return cls(
            rule_id=rule.id,
            version=rule.version or 1,
            rule_type=RuleType(rule.rule_type),
            percentage_required=rule.percentage_required,
            specific_approver_id=rule.specific_approver_id,
            is_hybrid=bool(rule.is_hybrid),
            is_manager_approver=bool(rule.is_manager_approver),
            approvers_sequence=bool(rule.approvers_sequence),
        )

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "RulePolicy":
        return cls(
            rule_id=uuid.UUID(data["rule_id"]) if data.get("rule_id") else None,
            version=int(data.get("version", 1)),
            rule_type=RuleType(data["rule_type"]),
            percentage_required=data.get("percentage_required"),
            specific_approver_id=(
                uuid.UUID(data["specific_approver_id"]) if data.get("specific_approver_id") else None
            ),
            is_hybrid=bool(data.get("is_hybrid", False)),
            is_manager_approver=bool(data.get("is_manager_approver", False)),
            approvers_sequence=bool(data.get("approvers_sequence", True)),
        )

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "rule_id": str(self.rule_id) if self.rule_id else None,
            "version": self.version,
            "rule_type": self.rule_type.value,
            "percentage_required": self.percentage_required,
            "specific_approver_id": str(self.specific_approver_id) if self.specific_approver_id else None,
            "is_hybrid": self.is_hybrid,
            "is_manager_approver": self.is_manager_approver,
            "approvers_sequence": self.approvers_sequence,
        }


def validate_rule_config(
    rule_type: RuleType,
    percentage_required: int | None,
    specific_approver_id: uuid.UUID | None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
) -> None:
    """Raise InvalidRuleConfigurationError if the fields don't fit the rule type."""
    if rule_type.uses_percentage:
        if percentage_required is None:
            raise InvalidRuleConfigurationError(
                f"Rule type '{rule_type.value}' requires percentage_required."
            )
        if not 0 <= percentage_required <= 100:
            raise InvalidRuleConfigurationError("percentage_required must be between 0 and 100.")
    if rule_type.uses_specific_approver and specific_approver_id is None:
        raise InvalidRuleConfigurationError(
            f"Rule type '{rule_type.value}' requires specific_approver_id."
        )
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise InvalidRuleConfigurationError("min_amount_threshold cannot exceed max_amount_threshold.")
    if (min_amount is not None and min_amount < 0) or (max_amount is not None and max_amount < 0):
        raise InvalidRuleConfigurationError("Amount thresholds cannot be negative.")


def validate_steps(steps) -> None:
    """A step without an approver_id must name the manager role."""
    for step in steps:
        if step.approver_id is None and (step.approver_role or "").lower() != MANAGER_ROLE:
            raise InvalidRuleConfigurationError(
                f"Approval step {step.step_order} needs approver_id; "
                f"role '{step.approver_role}' does not resolve to a user."
            )
