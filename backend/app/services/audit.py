"""Audit log helper — append-only writes to audit_logs table."""
import json
import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.workflow.changes import ChangeRecord, ChangeSink

logger = logging.getLogger(__name__)


def log(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None = None,
    actor_id: uuid.UUID | str | None = None,
    actor_email: str | None = None,
    company_id: uuid.UUID | str | None = None,
    before: Any | None = None,
    after: Any | None = None,
    notes: str | None = None,
) -> AuditLog:
    """Write a single audit log entry.

    Args:
        db: Sync SQLAlchemy session, or an AsyncSession (``add`` is sync on
            both; async callers flush/commit themselves).
        action: Short verb, e.g. 'expense.status_changed', 'approval_rule.created'.
        entity_type: Table/domain name, e.g. 'expense', 'user'.
        entity_id: PK of the affected record.
        actor_id: User who performed the action (None for system actions).
        actor_email: Denormalised email (preserved if user is later deleted).
        company_id: Tenant the entry belongs to.
        before: Dict snapshot of state before the action (JSON-serialisable).
        after: Dict snapshot of state after the action.
        notes: Free-text annotation.
    """
    entry = AuditLog(
        company_id=uuid.UUID(str(company_id)) if company_id else None,
        actor_id=uuid.UUID(str(actor_id)) if actor_id else None,
        actor_email=actor_email,
        action=action,
        entity_type=entity_type,
        entity_id=uuid.UUID(str(entity_id)) if entity_id else None,
        before_state=json.dumps(before, default=str) if before is not None else None,
        after_state=json.dumps(after, default=str) if after is not None else None,
        notes=notes,
    )
    db.add(entry)
    logger.debug("Audit: %s %s/%s", action, entity_type, entity_id)
    return entry


def record_change(db: Session, change: ChangeRecord) -> AuditLog:
    """Persist an engine ChangeRecord inside the caller's transaction."""
    return log(
        db=db,
        action="expense.status_changed",
        entity_type="expense",
        entity_id=change.expense_id,
        actor_id=change.actor_id,
        company_id=change.company_id,
        before={"status": change.old_status},
        after={"status": change.new_status, "at": change.at.isoformat(), **change.details},
        notes=change.reason,
    )


def change_sink(db: Session) -> ChangeSink:
    """Bind ``record_change`` to a session for use as the engine's change sink."""
    def _sink(change: ChangeRecord) -> None:
        record_change(db, change)
    return _sink
