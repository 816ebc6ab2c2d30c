import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, UUIDMixin, enum_column_type


class ApprovalAction(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ExpenseApproval(Base, UUIDMixin, TimestampMixin):
    """One planned approver slot for an expense, and what that approver decided."""

    __tablename__ = "expense_approvals"
    __table_args__ = (
        UniqueConstraint("expense_id", "approver_id", "step_order", name="uq_expense_approval_slot"),
    )

    expense_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[ApprovalAction] = mapped_column(
        enum_column_type(ApprovalAction), nullable=False, default=ApprovalAction.pending
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actioned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    expense: Mapped["Expense"] = relationship("Expense", back_populates="approvals")
