"""Change records emitted by the approval engine after each status transition."""
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ChangeRecord:
    expense_id: uuid.UUID
    company_id: uuid.UUID
    old_status: str
    new_status: str
    actor_id: uuid.UUID | None
    at: datetime
    reason: str
    details: dict[str, Any] = field(default_factory=dict)


ChangeSink = Callable[[ChangeRecord], None]


def discard(change: ChangeRecord) -> None:
    """Default sink for callers that don't persist changes."""
