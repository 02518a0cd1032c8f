"""
Audit trail for authentication events.

Every event is emitted as a structured `audit` log line and persisted to the
`audit-logs` collection. Persisting is best-effort: a failed insert is logged
and never fails the request that produced the event.
"""

from __future__ import annotations

from typing import Any, Optional

from errors import PersistenceError
from repositories.audit_log_repository import AuditLogRepository
from schemas.models.audit import AuditLogDoc
from shared.logging import get_logger

log = get_logger(__name__)


class AuditService:
    def __init__(self, repository: Optional[AuditLogRepository]) -> None:
        self._repo = repository

    async def record(
        self,
        action: str,
        *,
        resource: str = "auth",
        status: str = "success",
        user_id: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        log.info(
            "audit",
            action=action,
            resource=resource,
            status=status,
            user_id=user_id,
            **metadata,
        )
        if self._repo is None:
            return
        try:
            await self._repo.insert(
                AuditLogDoc(
                    action=action,
                    resource=resource,
                    status=status,
                    user_id=user_id,
                    metadata=metadata,
                )
            )
        except PersistenceError:
            log.warning("audit_persist_failed", action=action)
