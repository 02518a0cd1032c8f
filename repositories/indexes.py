"""
MongoDB index definitions, applied once at application startup.

create_index is idempotent, so running this on every boot is safe.
"""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from errors import PersistenceError
from shared.logging import get_logger

log = get_logger(__name__)

INDEXES: dict[str, list[IndexModel]] = {
    "users": [
        IndexModel([("email", ASCENDING)], unique=True, name="email_unique"),
        IndexModel([("phone", ASCENDING)], unique=True, name="phone_unique"),
    ],
    "refresh-tokens": [
        IndexModel([("user_id", ASCENDING), ("revoked", ASCENDING)], name="user_active"),
        IndexModel([("expires_at", ASCENDING)], expireAfterSeconds=0, name="expires_ttl"),
    ],
    "verification-sessions": [
        IndexModel([("expires_at", ASCENDING)], expireAfterSeconds=0, name="expires_ttl"),
    ],
    "verification-codes": [
        IndexModel([("session_token", ASCENDING)], name="session_token"),
        IndexModel([("purge_at", ASCENDING)], expireAfterSeconds=0, name="purge_ttl"),
    ],
    "audit-logs": [
        IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)], name="user_recent"),
        IndexModel([("action", ASCENDING)], name="action"),
    ],
}


async def ensure_indexes(db: AsyncDatabase) -> None:
    """Create every index in INDEXES on *db*."""
    for collection, models in INDEXES.items():
        try:
            await db[collection].create_indexes(models)
        except PyMongoError as e:
            log.error(
                "index_creation_failed",
                collection=collection,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError(f"Could not create indexes on {collection}") from e
    log.info("indexes_ensured", collections=len(INDEXES))
