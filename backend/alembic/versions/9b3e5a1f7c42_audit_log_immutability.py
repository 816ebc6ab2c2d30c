"""audit_log_immutability

Revision ID: 9b3e5a1f7c42
Revises: 4f1c2b7d9e01
Create Date: 2026-10-12 09:45:00.000000

Expense status transitions are recorded in audit_logs inside the same
transaction that changes the expense. Make the table append-only:
- Revoke UPDATE and DELETE from PUBLIC
- Grant SELECT and INSERT only
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '9b3e5a1f7c42'
down_revision: Union[str, None] = '4f1c2b7d9e01'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("REVOKE UPDATE, DELETE ON audit_logs FROM PUBLIC;")
    op.execute("GRANT SELECT, INSERT ON audit_logs TO PUBLIC;")


def downgrade() -> None:
    op.execute("GRANT UPDATE, DELETE ON audit_logs TO PUBLIC;")
