"""Repository for the `users` collection."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import ConflictError
from repositories.base import BaseRepository
from schemas.models.user import UserDoc
from shared.datetime_utils import utcnow
from shared.logging import get_logger
from shared.validators import IDENTIFIER_EMAIL, IDENTIFIER_PHONE, normalize_email

log = get_logger(__name__)


class UserRepository(BaseRepository):
    collection_name = "users"

    async def find_by_email_or_phone(
        self, email: str, phone: str
    ) -> Optional[UserDoc]:
        """Return any user holding *email* or *phone*, or None."""
        try:
            doc = await self._col.find_one(
                {"$or": [{"email": normalize_email(email)}, {"phone": phone}]}
            )
        except PyMongoError as e:
            raise self._persistence_error("find_by_email_or_phone", e) from e
        return UserDoc.from_mongo(doc)

    async def find_by_identifier(
        self, identifier: str, identifier_type: str
    ) -> Optional[UserDoc]:
        if identifier_type == IDENTIFIER_EMAIL:
            query = {"email": normalize_email(identifier)}
        elif identifier_type == IDENTIFIER_PHONE:
            query = {"phone": identifier.strip()}
        else:
            return None
        try:
            doc = await self._col.find_one(query)
        except PyMongoError as e:
            raise self._persistence_error("find_by_identifier", e) from e
        return UserDoc.from_mongo(doc)

    async def get_by_id(self, user_id: str) -> Optional[UserDoc]:
        if not ObjectId.is_valid(user_id):
            return None
        try:
            doc = await self._col.find_one({"_id": ObjectId(user_id)})
        except PyMongoError as e:
            raise self._persistence_error("get_by_id", e) from e
        return UserDoc.from_mongo(doc)

    async def create(self, user: UserDoc) -> UserDoc:
        """Insert *user* and return it with its generated id.

        Raises:
            ConflictError: email or phone already taken (unique index).
            PersistenceError: any other driver failure.
        """
        data = user.to_mongo()
        data["email"] = normalize_email(data["email"])
        now = utcnow()
        data["created_at"] = data.get("created_at") or now
        data["updated_at"] = now
        try:
            result = await self._col.insert_one(data)
        except DuplicateKeyError as e:
            key_value = (e.details or {}).get("keyValue") or {}
            log.info("user_create_conflict", fields=sorted(key_value))
            raise ConflictError("User already exists") from e
        except PyMongoError as e:
            raise self._persistence_error("create", e) from e
        data["_id"] = result.inserted_id
        return UserDoc.from_mongo(data)

    async def touch_last_login(
        self, user_id: str, at: Optional[datetime] = None
    ) -> bool:
        if not ObjectId.is_valid(user_id):
            return False
        try:
            result = await self._col.update_one(
                {"_id": ObjectId(user_id)},
                {"$set": {"last_login_at": at or utcnow()}},
            )
        except PyMongoError as e:
            raise self._persistence_error("touch_last_login", e) from e
        return result.matched_count == 1
