"""Pydantic schemas for approval rules and their template steps."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.approval_rule import RuleType


# ─── Template steps ───

class ApprovalStepIn(BaseModel):
    step_order: int = Field(ge=1)
    approver_id: uuid.UUID | None = None
    approver_role: str | None = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def _needs_approver_or_role(self):
        if self.approver_id is None and not self.approver_role:
            raise ValueError("A step needs approver_id or approver_role.")
        return self


class ApprovalStepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    step_order: int
    approver_id: uuid.UUID | None
    approver_role: str | None


# ─── Rules ───

NOT_NULLABLE_RULE_FIELDS = frozenset({
    "name", "rule_type", "is_hybrid", "is_manager_approver", "approvers_sequence", "is_active", "steps",
})


class ApprovalRuleIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    rule_type: RuleType
    min_amount_threshold: Decimal | None = None
    max_amount_threshold: Decimal | None = None
    percentage_required: int | None = None
    specific_approver_id: uuid.UUID | None = None
    is_hybrid: bool = False
    is_manager_approver: bool = False
    approvers_sequence: bool = True
    is_active: bool = True
    steps: list[ApprovalStepIn] = Field(default_factory=list)


class ApprovalRuleUpdate(BaseModel):
    """Partial update. ``steps``, when given, replaces the whole template.

    Only the thresholds, ``percentage_required`` and ``specific_approver_id``
    may be cleared with an explicit null.
    """
    name: str | None = Field(default=None, min_length=1, max_length=255)
    rule_type: RuleType | None = None
    min_amount_threshold: Decimal | None = None
    max_amount_threshold: Decimal | None = None
    percentage_required: int | None = None
    specific_approver_id: uuid.UUID | None = None
    is_hybrid: bool | None = None
    is_manager_approver: bool | None = None
    approvers_sequence: bool | None = None
    is_active: bool | None = None
    steps: list[ApprovalStepIn] | None = None

    @model_validator(mode="after")
    def _no_null_for_required_fields(self):
        cleared = sorted(
            name for name in self.model_fields_set & NOT_NULLABLE_RULE_FIELDS
            if getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")
        return self


class ApprovalRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    rule_type: RuleType
    min_amount_threshold: Decimal | None
    max_amount_threshold: Decimal | None
    percentage_required: int | None
    specific_approver_id: uuid.UUID | None
    is_hybrid: bool
    is_manager_approver: bool
    approvers_sequence: bool
    is_active: bool
    version: int
    steps: list[ApprovalStepOut]
    created_at: datetime
    updated_at: datetime
