"""Unit tests for the MongoDB document models and storage records."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from pydantic import ValidationError

from schemas.models.audit import AuditLogDoc
from schemas.models.base import PyObjectId
from schemas.models.token import RefreshTokenDoc
from schemas.models.user import UserDoc
from schemas.models.verification import (
    OtpRecord,
    SessionRecord,
    VerificationCodeDoc,
    VerificationSessionDoc,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestPyObjectId:
    def test_accepts_string(self):
        oid = "507f1f77bcf86cd799439011"
        user = UserDoc.model_validate({"_id": oid, "email": "a@b.co", "phone": "+14155552671"})
        assert isinstance(user.id, ObjectId)
        assert user.user_id == oid

    def test_rejects_garbage(self):
        with pytest.raises(ValidationError):
            UserDoc.model_validate({"_id": "nope", "email": "a@b.co", "phone": "+1"})

    def test_validate_passes_object_id_through(self):
        oid = ObjectId()
        assert PyObjectId._validate(oid) is oid


class TestUserDoc:
    def test_defaults(self):
        user = UserDoc(email="a@b.co", phone="+14155552671")
        assert user.user_type == "student"
        assert user.theme == "system"
        assert user.language == "en"
        assert user.onboarding_completed is False

    def test_to_mongo_omits_missing_id(self):
        data = UserDoc(email="a@b.co", phone="+14155552671").to_mongo()
        assert "_id" not in data
        assert data["email"] == "a@b.co"

    def test_from_mongo_none(self):
        assert UserDoc.from_mongo(None) is None

    def test_rejects_unknown_user_type(self):
        with pytest.raises(ValidationError):
            UserDoc(email="a@b.co", phone="+14155552671", user_type="admin")


class TestRefreshTokenDoc:
    def test_string_id_round_trip(self):
        doc = RefreshTokenDoc(_id="abc123", user_id="u1", token_hash="h", expires_at=NOW)
        data = doc.to_mongo()
        assert data["_id"] == "abc123"
        assert data["revoked"] is False
        assert RefreshTokenDoc.from_mongo(data).id == "abc123"


class TestVerificationDocs:
    def test_session_doc_to_record(self):
        naive = datetime(2026, 1, 1, 12, 0)
        doc = VerificationSessionDoc(
            _id="tok", purpose="registration", channels=["email", "phone"], expires_at=naive
        )
        record = doc.to_record()
        assert record.token == "tok"
        assert record.channels == ("email", "phone")
        assert record.expires_at.tzinfo == timezone.utc

    def test_code_doc_id(self):
        assert VerificationCodeDoc.doc_id("tok", "phone") == "tok:phone"

    def test_code_doc_to_record(self):
        doc = VerificationCodeDoc(
            _id="tok:email",
            session_token="tok",
            identifier_type="email",
            identifier="a@b.co",
            code_hash="h",
            expires_at=NOW,
            attempts=2,
        )
        record = doc.to_record()
        assert record.attempts == 2
        assert record.verified is False


class TestSessionRecord:
    def _record(self, kind: str, verified: bool) -> OtpRecord:
        return OtpRecord(
            identifier="x",
            identifier_type=kind,
            code_hash="h",
            expires_at=NOW,
            verified=verified,
        )

    def test_fully_verified_requires_every_channel(self):
        session = SessionRecord(
            token="t",
            purpose="registration",
            channels=("email", "phone"),
            expires_at=NOW,
            records={"email": self._record("email", True)},
        )
        assert session.fully_verified is False

    def test_fully_verified_when_all_verified(self):
        session = SessionRecord(
            token="t",
            purpose="registration",
            channels=("email", "phone"),
            expires_at=NOW,
            records={
                "email": self._record("email", True),
                "phone": self._record("phone", True),
            },
        )
        assert session.fully_verified is True

    def test_record_expiry(self):
        record = self._record("email", False)
        assert record.is_expired(NOW + timedelta(seconds=1)) is True
        assert record.is_expired(NOW - timedelta(seconds=1)) is False


def test_audit_log_doc_defaults():
    entry = AuditLogDoc(action="login", resource="auth")
    assert entry.status == "success"
    assert entry.metadata == {}
