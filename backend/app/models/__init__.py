from app.models.company import Company
from app.models.user import User, Role
from app.models.expense import Expense, ExpenseCategory, ExpenseStatus
from app.models.approval_rule import ApprovalRule, ApprovalStep, RuleType, MANAGER_ROLE
from app.models.approval import ExpenseApproval, ApprovalAction
from app.models.audit import AuditLog

__all__ = [
    "Company",
    "User", "Role",
    "Expense", "ExpenseCategory", "ExpenseStatus",
    "ApprovalRule", "ApprovalStep", "RuleType", "MANAGER_ROLE",
    "ExpenseApproval", "ApprovalAction",
    "AuditLog",
]
