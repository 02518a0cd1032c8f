"""Repository for the `audit-logs` collection."""

from __future__ import annotations

from pymongo.errors import PyMongoError

from repositories.base import BaseRepository
from schemas.models.audit import AuditLogDoc
from shared.datetime_utils import utcnow


class AuditLogRepository(BaseRepository):
    collection_name = "audit-logs"

    async def insert(self, entry: AuditLogDoc) -> None:
        data = entry.to_mongo()
        data["created_at"] = data.get("created_at") or utcnow()
        try:
            await self._col.insert_one(data)
        except PyMongoError as e:
            raise self._persistence_error("insert", e) from e
