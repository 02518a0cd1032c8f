"""
Repository for the `verification-sessions` and `verification-codes`
collections.

This is the durable backend of the verification store. It is only written
when the cache was unreachable at session creation; see
infrastructure.verification_store.store for the routing rules.

Attempt counting uses find_one_and_update with $inc so concurrent verify
calls each observe a distinct post-increment value.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from repositories.base import BaseRepository
from schemas.models.verification import (
    OtpRecord,
    SessionRecord,
    VerificationCodeDoc,
    VerificationSessionDoc,
)
from shared.datetime_utils import utcnow


class VerificationRepository(BaseRepository):
    collection_name = "verification-sessions"
    codes_collection_name = "verification-codes"

    name = "durable"

    def __init__(self, db: AsyncDatabase) -> None:
        super().__init__(db)
        self._codes = db[self.codes_collection_name]

    @property
    def codes(self):
        return self._codes

    # ── Sessions ─────────────────────────────────────────────────────────────

    async def save_session(self, session: SessionRecord) -> None:
        """Insert or replace the session document (records untouched)."""
        doc = VerificationSessionDoc(
            _id=session.token,
            purpose=session.purpose,
            channels=list(session.channels),
            expires_at=session.expires_at,
            user_id=session.user_id,
            password_hash=session.password_hash,
            created_at=utcnow(),
        )
        try:
            await self._col.replace_one(
                {"_id": session.token}, doc.to_mongo(), upsert=True
            )
            # Records follow the session's purge time
            await self._codes.update_many(
                {"session_token": session.token},
                {"$set": {"purge_at": session.expires_at}},
            )
        except PyMongoError as e:
            raise self._persistence_error("save_session", e) from e

    async def get_session(self, token: str) -> Optional[SessionRecord]:
        try:
            raw, raw_codes = await asyncio.gather(
                self._col.find_one({"_id": token}),
                self._codes.find({"session_token": token}).to_list(length=None),
            )
        except PyMongoError as e:
            raise self._persistence_error("get_session", e) from e
        doc = VerificationSessionDoc.from_mongo(raw)
        if doc is None:
            return None
        records = {}
        for code_raw in raw_codes:
            code = VerificationCodeDoc.from_mongo(code_raw)
            records[code.identifier_type] = code.to_record()
        return doc.to_record(records)

    async def delete_session(self, token: str) -> None:
        try:
            await self._col.delete_one({"_id": token})
            await self._codes.delete_many({"session_token": token})
        except PyMongoError as e:
            raise self._persistence_error("delete_session", e) from e

    async def consume_session(self, token: str) -> bool:
        """Delete the session document. True only for the call that removed it."""
        try:
            result = await self._col.delete_one({"_id": token})
            if result.deleted_count != 1:
                return False
            await self._codes.delete_many({"session_token": token})
        except PyMongoError as e:
            raise self._persistence_error("consume_session", e) from e
        return True

    # ── Codes ────────────────────────────────────────────────────────────────

    async def get_record(self, token: str, identifier_type: str) -> Optional[OtpRecord]:
        try:
            raw = await self._codes.find_one(
                {"_id": VerificationCodeDoc.doc_id(token, identifier_type)}
            )
        except PyMongoError as e:
            raise self._persistence_error("get_record", e) from e
        doc = VerificationCodeDoc.from_mongo(raw)
        return doc.to_record() if doc else None

    async def put_record(
        self, token: str, record: OtpRecord, purge_at: datetime
    ) -> None:
        """Write a fresh record for the channel, replacing any previous one."""
        doc_id = VerificationCodeDoc.doc_id(token, record.identifier_type)
        doc = VerificationCodeDoc(
            _id=doc_id,
            session_token=token,
            identifier_type=record.identifier_type,
            identifier=record.identifier,
            code_hash=record.code_hash,
            expires_at=record.expires_at,
            attempts=record.attempts,
            verified=record.verified,
            purge_at=purge_at,
            created_at=utcnow(),
        )
        try:
            await self._codes.replace_one({"_id": doc_id}, doc.to_mongo(), upsert=True)
        except PyMongoError as e:
            raise self._persistence_error("put_record", e) from e

    async def reserve_attempt(self, token: str, identifier_type: str) -> Optional[int]:
        """Increment the attempt counter. Returns the new value, None if absent."""
        try:
            raw = await self._codes.find_one_and_update(
                {"_id": VerificationCodeDoc.doc_id(token, identifier_type)},
                {"$inc": {"attempts": 1}},
                projection={"attempts": 1},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise self._persistence_error("reserve_attempt", e) from e
        return None if raw is None else int(raw["attempts"])

    async def refund_attempt(self, token: str, identifier_type: str) -> None:
        try:
            await self._codes.update_one(
                {
                    "_id": VerificationCodeDoc.doc_id(token, identifier_type),
                    "attempts": {"$gt": 0},
                },
                {"$inc": {"attempts": -1}},
            )
        except PyMongoError as e:
            raise self._persistence_error("refund_attempt", e) from e

    async def mark_verified(self, token: str, identifier_type: str) -> bool:
        try:
            result = await self._codes.update_one(
                {"_id": VerificationCodeDoc.doc_id(token, identifier_type)},
                {"$set": {"verified": True}},
            )
        except PyMongoError as e:
            raise self._persistence_error("mark_verified", e) from e
        return result.matched_count == 1
