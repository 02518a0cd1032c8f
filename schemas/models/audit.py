"""
Audit log document model.

Maps to the `audit-logs` MongoDB collection. One document per security
relevant event (registration, login, refresh, logout, OTP outcomes).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel

AuditStatus = Literal["success", "failure", "error"]


class AuditLogDoc(MongoBaseModel):
    """Document model for the `audit-logs` collection."""

    action: str
    resource: str
    status: AuditStatus = "success"
    user_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
