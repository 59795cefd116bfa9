"""Audit Logger - trail of supervised actions.

Records who did what to which resource:
- Who: user_id
- What: action (RESOLVE_ALERT, CREATE_ALERT, CREATE_SENSOR_ASSIGNMENT, ...)
- On what: resource ("alert:<id>", "sensor_assignment:<id>")
- When: created_at
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ...schemas import AuditEntry

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes to the ``audit_log`` table through the store.

    If the write fails the entry goes to the structured ``audit`` logger
    instead, so the action being audited is not rolled back by it.
    """

    def __init__(self, store: Any):
        self._store = store
        self._fallback_logger = logging.getLogger("audit")

    def record(
        self,
        user_id: str,
        action: str,
        resource: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        at: Optional[datetime] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            id=uuid.uuid4().hex,
            user_id=user_id,
            action=action,
            resource=resource,
            metadata=metadata or {},
            created_at=at or datetime.now(timezone.utc),
        )
        try:
            self._store.insert_audit(entry)
            logger.debug("[AUDIT] %s %s by %s", action, resource, user_id)
            return entry
        except SQLAlchemyError as e:
            logger.warning("[AUDIT] Failed to write audit row: %s", type(e).__name__)

        self._fallback_logger.info(
            "AUDIT",
            extra={
                "audit_id": entry.id,
                "user_id": user_id,
                "action": action,
                "resource": resource,
                "audit_metadata": entry.metadata,
                "created_at": entry.created_at.isoformat(),
            },
        )
        return entry
