"""
Append-only audit sink.

Lifecycle operations receive a sink as a parameter instead of writing to a
module-level logger, so callers decide where events go.
"""
import logging
from typing import Any, Optional, Protocol

import database
from models import AuditAction

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def record(
        self,
        user_id: str,
        action: AuditAction,
        task_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> None: ...


class SqliteAuditLog:
    """Writes audit entries to the audit_logs table. Entries are never updated or deleted."""

    def record(
        self,
        user_id: str,
        action: AuditAction,
        task_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        entry_id = database.insert_audit_log(user_id, action.value, task_id, payload)
        logger.debug("audit #%s %s task=%s", entry_id, action.value, task_id)
