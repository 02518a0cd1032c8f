"""Unit tests for the MongoDB repositories against mocked async collections."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, OperationFailure, ServerSelectionTimeoutError

from errors import ConflictError, PersistenceError
from repositories.audit_log_repository import AuditLogRepository
from repositories.indexes import INDEXES, ensure_indexes
from repositories.refresh_token_repository import RefreshTokenRepository
from repositories.user_repository import UserRepository
from repositories.verification_repository import VerificationRepository
from schemas.models.audit import AuditLogDoc
from schemas.models.token import RefreshTokenDoc
from schemas.models.user import UserDoc
from schemas.models.verification import OtpRecord, SessionRecord

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _db(*collections):
    """A MagicMock database whose [] returns the given collections in order."""
    db = MagicMock()
    db.__getitem__.side_effect = list(collections)
    return db


def _collection():
    col = MagicMock()
    for op in (
        "find_one",
        "insert_one",
        "update_one",
        "update_many",
        "replace_one",
        "delete_one",
        "delete_many",
        "find_one_and_update",
        "create_indexes",
    ):
        setattr(col, op, AsyncMock())
    return col


# ── UserRepository ────────────────────────────────────────────────────────────


class TestUserRepository:
    async def test_find_by_email_or_phone_normalizes_email(self):
        col = _collection()
        col.find_one.return_value = None
        repo = UserRepository(_db(col))
        assert await repo.find_by_email_or_phone(" USER@Example.com", "+14155552671") is None
        query = col.find_one.call_args.args[0]
        assert query == {"$or": [{"email": "user@example.com"}, {"phone": "+14155552671"}]}

    async def test_find_by_identifier_phone(self):
        col = _collection()
        oid = ObjectId()
        col.find_one.return_value = {"_id": oid, "email": "a@b.co", "phone": "+14155552671"}
        repo = UserRepository(_db(col))
        user = await repo.find_by_identifier("+14155552671", "phone")
        assert user.user_id == str(oid)

    async def test_find_by_identifier_unknown_type(self):
        col = _collection()
        repo = UserRepository(_db(col))
        assert await repo.find_by_identifier("x", "carrier_pigeon") is None
        col.find_one.assert_not_awaited()

    async def test_get_by_id_invalid_object_id(self):
        col = _collection()
        repo = UserRepository(_db(col))
        assert await repo.get_by_id("not-an-id") is None
        col.find_one.assert_not_awaited()

    async def test_create_returns_doc_with_id(self):
        col = _collection()
        oid = ObjectId()
        col.insert_one.return_value = MagicMock(inserted_id=oid)
        repo = UserRepository(_db(col))
        user = await repo.create(UserDoc(email="A@B.co", phone="+14155552671"))
        assert user.id == oid
        assert user.email == "a@b.co"
        assert user.created_at is not None

    async def test_create_duplicate_becomes_conflict(self):
        col = _collection()
        col.insert_one.side_effect = DuplicateKeyError(
            "E11000", 11000, {"keyValue": {"email": "a@b.co"}}
        )
        repo = UserRepository(_db(col))
        with pytest.raises(ConflictError):
            await repo.create(UserDoc(email="a@b.co", phone="+14155552671"))

    async def test_driver_error_becomes_persistence_error(self):
        col = _collection()
        col.find_one.side_effect = ServerSelectionTimeoutError("no servers")
        repo = UserRepository(_db(col))
        with pytest.raises(PersistenceError):
            await repo.find_by_identifier("a@b.co", "email")

    async def test_touch_last_login(self):
        col = _collection()
        col.update_one.return_value = MagicMock(matched_count=1)
        repo = UserRepository(_db(col))
        assert await repo.touch_last_login(str(ObjectId()), NOW) is True
        update = col.update_one.call_args.args[1]
        assert update == {"$set": {"last_login_at": NOW}}


# ── RefreshTokenRepository ────────────────────────────────────────────────────


class TestRefreshTokenRepository:
    async def test_insert_uses_jti_as_id(self):
        col = _collection()
        repo = RefreshTokenRepository(_db(col))
        await repo.insert(
            RefreshTokenDoc(_id="jti-1", user_id="u1", token_hash="h", expires_at=NOW)
        )
        data = col.insert_one.call_args.args[0]
        assert data["_id"] == "jti-1"
        assert data["revoked"] is False
        assert data["created_at"] is not None

    @pytest.mark.parametrize("modified, expected", [(1, True), (0, False)])
    async def test_claim_is_conditional(self, modified, expected):
        col = _collection()
        col.update_one.return_value = MagicMock(modified_count=modified)
        repo = RefreshTokenRepository(_db(col))
        assert await repo.claim("u1", "jti-1", NOW) is expected
        query, update = col.update_one.call_args.args
        assert query == {
            "_id": "jti-1",
            "user_id": "u1",
            "revoked": False,
            "expires_at": {"$gt": NOW},
        }
        assert update["$set"]["revoked"] is True

    async def test_revoke_all_returns_count(self):
        col = _collection()
        col.update_many.return_value = MagicMock(modified_count=4)
        repo = RefreshTokenRepository(_db(col))
        assert await repo.revoke_all("u1") == 4

    async def test_insert_failure(self):
        col = _collection()
        col.insert_one.side_effect = OperationFailure("write concern")
        repo = RefreshTokenRepository(_db(col))
        with pytest.raises(PersistenceError):
            await repo.insert(
                RefreshTokenDoc(_id="jti-1", user_id="u1", token_hash="h", expires_at=NOW)
            )


# ── VerificationRepository ────────────────────────────────────────────────────


class TestVerificationRepository:
    def _make(self):
        sessions, codes = _collection(), _collection()
        return VerificationRepository(_db(sessions, codes)), sessions, codes

    def _record(self, **overrides) -> OtpRecord:
        base = dict(
            identifier="a@b.co",
            identifier_type="email",
            code_hash="h",
            expires_at=NOW,
        )
        base.update(overrides)
        return OtpRecord(**base)

    async def test_save_session_upserts_and_moves_purge_time(self):
        repo, sessions, codes = self._make()
        expires = NOW + timedelta(minutes=15)
        await repo.save_session(
            SessionRecord(token="tok", purpose="login", channels=("email",), expires_at=expires)
        )
        filter_, doc = sessions.replace_one.call_args.args
        assert filter_ == {"_id": "tok"}
        assert doc["channels"] == ["email"]
        assert sessions.replace_one.call_args.kwargs["upsert"] is True
        assert codes.update_many.call_args.args[1] == {"$set": {"purge_at": expires}}

    async def test_get_session_assembles_records(self):
        repo, sessions, codes = self._make()
        sessions.find_one.return_value = {
            "_id": "tok",
            "purpose": "registration",
            "channels": ["email", "phone"],
            "expires_at": NOW,
        }
        cursor = MagicMock()
        cursor.to_list = AsyncMock(
            return_value=[
                {
                    "_id": "tok:email",
                    "session_token": "tok",
                    "identifier_type": "email",
                    "identifier": "a@b.co",
                    "code_hash": "h",
                    "expires_at": NOW,
                    "verified": True,
                }
            ]
        )
        codes.find = MagicMock(return_value=cursor)
        session = await repo.get_session("tok")
        assert session.channels == ("email", "phone")
        assert session.records["email"].verified is True
        assert "phone" not in session.records

    async def test_get_session_missing(self):
        repo, sessions, codes = self._make()
        sessions.find_one.return_value = None
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[])
        codes.find = MagicMock(return_value=cursor)
        assert await repo.get_session("tok") is None

    async def test_put_record_keys_by_token_and_type(self):
        repo, _, codes = self._make()
        await repo.put_record("tok", self._record(identifier_type="phone"), NOW)
        filter_, doc = codes.replace_one.call_args.args
        assert filter_ == {"_id": "tok:phone"}
        assert doc["purge_at"] == NOW
        assert doc["attempts"] == 0

    async def test_reserve_attempt_returns_post_increment(self):
        repo, _, codes = self._make()
        codes.find_one_and_update.return_value = {"_id": "tok:email", "attempts": 2}
        assert await repo.reserve_attempt("tok", "email") == 2
        assert codes.find_one_and_update.call_args.args[1] == {"$inc": {"attempts": 1}}

    async def test_reserve_attempt_missing_record(self):
        repo, _, codes = self._make()
        codes.find_one_and_update.return_value = None
        assert await repo.reserve_attempt("tok", "email") is None

    async def test_refund_never_goes_negative(self):
        repo, _, codes = self._make()
        await repo.refund_attempt("tok", "email")
        query = codes.update_one.call_args.args[0]
        assert query["attempts"] == {"$gt": 0}

    async def test_delete_session_removes_codes(self):
        repo, sessions, codes = self._make()
        await repo.delete_session("tok")
        sessions.delete_one.assert_awaited_once_with({"_id": "tok"})
        codes.delete_many.assert_awaited_once_with({"session_token": "tok"})

    @pytest.mark.parametrize("deleted, expected", [(1, True), (0, False)])
    async def test_consume_session_reports_winner(self, deleted, expected):
        repo, sessions, codes = self._make()
        sessions.delete_one.return_value = MagicMock(deleted_count=deleted)
        assert await repo.consume_session("tok") is expected
        sessions.delete_one.assert_awaited_once_with({"_id": "tok"})
        if expected:
            codes.delete_many.assert_awaited_once_with({"session_token": "tok"})
        else:
            codes.delete_many.assert_not_awaited()

    async def test_driver_error(self):
        repo, _, codes = self._make()
        codes.update_one.side_effect = ServerSelectionTimeoutError("down")
        with pytest.raises(PersistenceError):
            await repo.mark_verified("tok", "email")


# ── Audit + indexes ───────────────────────────────────────────────────────────


async def test_audit_insert_stamps_created_at():
    col = _collection()
    repo = AuditLogRepository(_db(col))
    await repo.insert(AuditLogDoc(action="login", resource="auth", metadata={"k": "v"}))
    data = col.insert_one.call_args.args[0]
    assert data["metadata"] == {"k": "v"}
    assert data["created_at"] is not None


async def test_ensure_indexes_creates_every_collection():
    cols = {name: _collection() for name in INDEXES}
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: cols[name]
    await ensure_indexes(db)
    for name, col in cols.items():
        col.create_indexes.assert_awaited_once_with(INDEXES[name])


async def test_ensure_indexes_failure_is_persistence_error():
    col = _collection()
    col.create_indexes.side_effect = OperationFailure("index conflict")
    db = MagicMock()
    db.__getitem__.return_value = col
    with pytest.raises(PersistenceError):
        await ensure_indexes(db)
