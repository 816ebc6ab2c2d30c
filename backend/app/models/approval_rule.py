"""Approval rule and rule-template step models."""
import enum
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, UUIDMixin, enum_column_type


class RuleType(str, enum.Enum):
    percentage = "percentage"
    specific_approver = "specific_approver"
    hybrid = "hybrid"

    @property
    def uses_percentage(self) -> bool:
        return self in (RuleType.percentage, RuleType.hybrid)

    @property
    def uses_specific_approver(self) -> bool:
        return self in (RuleType.specific_approver, RuleType.hybrid)


# ApprovalStep.approver_role value that resolves to the submitter's direct manager.
MANAGER_ROLE = "manager"


class ApprovalRule(Base, UUIDMixin, TimestampMixin):
    """Company approval policy, optionally scoped to an amount range."""

    __tablename__ = "approval_rules"
    __table_args__ = (
        CheckConstraint(
            "percentage_required IS NULL OR (percentage_required >= 0 AND percentage_required <= 100)",
            name="ck_approval_rules_percentage_range",
        ),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_type: Mapped[RuleType] = mapped_column(enum_column_type(RuleType), nullable=False)
    min_amount_threshold: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_amount_threshold: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    percentage_required: Mapped[int | None] = mapped_column(Integer, nullable=True)
    specific_approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    is_hybrid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # True = OR, False = AND
    is_manager_approver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approvers_sequence: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    steps: Mapped[list["ApprovalStep"]] = relationship(
        "ApprovalStep",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="[ApprovalStep.step_order, ApprovalStep.created_at, ApprovalStep.id]",
    )


class ApprovalStep(Base, UUIDMixin, TimestampMixin):
    """Template approver for a rule. Steps sharing a step_order run in parallel."""

    __tablename__ = "approval_steps"

    approval_rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("approval_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    approver_role: Mapped[str | None] = mapped_column(String(50), nullable=True)  # "manager", or a display label

    rule: Mapped["ApprovalRule"] = relationship("ApprovalRule", back_populates="steps")
