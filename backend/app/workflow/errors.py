"""Typed errors raised by the approval workflow engine.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. None of them are retried internally; callers decide
(e.g. re-read and retry on ConcurrentModificationError).
"""
import uuid
from decimal import Decimal


class ApprovalEngineError(Exception):
    code: str = "APPROVAL_ENGINE_ERROR"
    status_code: int = 400


class ExpenseNotFoundError(ApprovalEngineError):
    code = "EXPENSE_NOT_FOUND"
    status_code = 404

    def __init__(self, expense_id: uuid.UUID):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found.")


class NoMatchingRuleError(ApprovalEngineError):
    code = "NO_MATCHING_RULE"
    status_code = 422

    def __init__(self, company_id: uuid.UUID, amount: Decimal):
        self.company_id = company_id
        self.amount = amount
        super().__init__(f"No active approval rule covers amount {amount} for company {company_id}.")


class InvalidRuleConfigurationError(ApprovalEngineError):
    code = "INVALID_RULE_CONFIGURATION"
    status_code = 422


class UnresolvableApproverError(ApprovalEngineError):
    code = "UNRESOLVABLE_APPROVER"
    status_code = 422

    def __init__(self, message: str, approver_id: uuid.UUID | None = None):
        self.approver_id = approver_id
        super().__init__(message)


class ManagerCycleDetectedError(ApprovalEngineError):
    code = "MANAGER_CYCLE_DETECTED"
    status_code = 422

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__(f"Manager chain starting at user {user_id} contains a cycle.")


class InvalidApproverError(ApprovalEngineError):
    code = "INVALID_APPROVER"
    status_code = 403

    def __init__(self, expense_id: uuid.UUID, approver_id: uuid.UUID, reason: str):
        self.expense_id = expense_id
        self.approver_id = approver_id
        super().__init__(f"User {approver_id} cannot act on expense {expense_id}: {reason}")


class AlreadyActionedError(ApprovalEngineError):
    code = "ALREADY_ACTIONED"
    status_code = 409

    def __init__(self, expense_id: uuid.UUID, approver_id: uuid.UUID):
        self.expense_id = expense_id
        self.approver_id = approver_id
        super().__init__(f"User {approver_id} has already acted on expense {expense_id}.")


class ExpenseFinalizedError(ApprovalEngineError):
    code = "EXPENSE_FINALIZED"
    status_code = 409

    def __init__(self, expense_id: uuid.UUID, status: str):
        self.expense_id = expense_id
        self.status = status
        super().__init__(f"Expense {expense_id} is already {status}.")


class ExpenseAlreadySubmittedError(ApprovalEngineError):
    code = "EXPENSE_ALREADY_SUBMITTED"
    status_code = 409

    def __init__(self, expense_id: uuid.UUID):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} is already in approval.")


class ExpenseNotSubmittedError(ApprovalEngineError):
    code = "EXPENSE_NOT_SUBMITTED"
    status_code = 409

    def __init__(self, expense_id: uuid.UUID):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} has not been submitted for approval.")


class ConcurrentModificationError(ApprovalEngineError):
    code = "CONCURRENT_MODIFICATION"
    status_code = 409

    def __init__(self, expense_id: uuid.UUID):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} was modified concurrently; re-read and retry.")


class CorruptApprovalPlanError(ApprovalEngineError):
    """Stored plan data is inconsistent. The expense stays in_progress for an admin to fix."""

    code = "CORRUPT_APPROVAL_PLAN"
    status_code = 500

    def __init__(self, expense_id: uuid.UUID, reason: str):
        self.expense_id = expense_id
        super().__init__(f"Approval plan for expense {expense_id} is inconsistent: {reason}")
