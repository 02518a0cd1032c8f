"""
Shared plumbing for the async MongoDB repositories.

Each repository owns one collection of the database handed to it. Driver
errors never leak out of a repository: they are logged and re-raised as
PersistenceError so routes render a consistent 500.
"""

from __future__ import annotations

from typing import Any

from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from errors import PersistenceError
from shared.logging import get_logger

log = get_logger(__name__)


class BaseRepository:
    collection_name: str = ""

    def __init__(self, db: AsyncDatabase) -> None:
        self._db = db
        self._col = db[self.collection_name]

    @property
    def collection(self) -> Any:
        return self._col

    def _persistence_error(self, op: str, e: PyMongoError) -> PersistenceError:
        log.error(
            "mongo_operation_failed",
            collection=self.collection_name,
            op=op,
            error=str(e),
            error_type=type(e).__name__,
        )
        return PersistenceError("Database operation failed")
