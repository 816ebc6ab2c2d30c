import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin, enum_column_type


class Role(str, enum.Enum):
    admin = "admin"
    manager = "manager"
    employee = "employee"

    @property
    def can_approve(self) -> bool:
        return self in (Role.admin, Role.manager)

    @property
    def can_administer(self) -> bool:
        return self is Role.admin

    @property
    def can_act_for_others(self) -> bool:
        """Admins may record a decision on behalf of a planned approver."""
        return self is Role.admin


class User(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "users"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(enum_column_type(Role), nullable=False, default=Role.employee)
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True
    )
    # Expenses of this user go to their direct manager before the rule's approvers.
    is_manager_approver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # soft delete

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
