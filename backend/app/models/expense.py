import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, UUIDMixin, enum_column_type, utcnow


class ExpenseStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    approved = "approved"
    rejected = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ExpenseStatus.approved, ExpenseStatus.rejected)


class ExpenseCategory(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "expense_categories"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Expense(Base, UUIDMixin, TimestampMixin):
    """An employee expense claim and its position in the approval workflow."""

    __tablename__ = "expenses"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("expense_categories.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    expense_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    merchant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[ExpenseStatus] = mapped_column(
        enum_column_type(ExpenseStatus), nullable=False, default=ExpenseStatus.pending, index=True
    )
    # step_order of the wave currently awaiting decisions
    current_approval_step: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approval_rule_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("approval_rules.id"), nullable=True
    )
    rule_snapshot: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    approvals: Mapped[list["ExpenseApproval"]] = relationship(
        "ExpenseApproval",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseApproval.step_order",
    )

    __mapper_args__ = {"version_id_col": version}
