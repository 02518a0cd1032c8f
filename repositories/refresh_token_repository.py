"""
Repository for the `refresh-tokens` collection.

The durable half of the token ledger. claim() is the conditional update that
makes refresh-token rotation single-use even when the cache is unavailable:
only one caller can flip `revoked` from False to True.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pymongo.errors import PyMongoError

from repositories.base import BaseRepository
from schemas.models.token import RefreshTokenDoc
from shared.datetime_utils import utcnow


class RefreshTokenRepository(BaseRepository):
    collection_name = "refresh-tokens"

    async def insert(self, token: RefreshTokenDoc) -> None:
        data = token.to_mongo()
        data["created_at"] = data.get("created_at") or utcnow()
        try:
            await self._col.insert_one(data)
        except PyMongoError as e:
            raise self._persistence_error("insert", e) from e

    async def claim(
        self, user_id: str, jti: str, now: Optional[datetime] = None
    ) -> bool:
        """Revoke an active token. True only for the caller that revoked it."""
        now = now or utcnow()
        try:
            result = await self._col.update_one(
                {
                    "_id": jti,
                    "user_id": user_id,
                    "revoked": False,
                    "expires_at": {"$gt": now},
                },
                {"$set": {"revoked": True, "revoked_at": now}},
            )
        except PyMongoError as e:
            raise self._persistence_error("claim", e) from e
        return result.modified_count == 1

    async def revoke(self, user_id: str, jti: str) -> bool:
        try:
            result = await self._col.update_one(
                {"_id": jti, "user_id": user_id, "revoked": False},
                {"$set": {"revoked": True, "revoked_at": utcnow()}},
            )
        except PyMongoError as e:
            raise self._persistence_error("revoke", e) from e
        return result.modified_count == 1

    async def revoke_all(self, user_id: str) -> int:
        try:
            result = await self._col.update_many(
                {"user_id": user_id, "revoked": False},
                {"$set": {"revoked": True, "revoked_at": utcnow()}},
            )
        except PyMongoError as e:
            raise self._persistence_error("revoke_all", e) from e
        return result.modified_count
