"""
Verification session and one-time-code models.

Two layers live here:

- SessionRecord / OtpRecord: the storage-neutral records the OTP services
  work with. Both the Redis-backed and the MongoDB-backed verification stores
  read and write these.
- VerificationSessionDoc / VerificationCodeDoc: the MongoDB documents for the
  `verification-sessions` and `verification-codes` collections, used when
  the cache is unavailable.

Codes are never stored in plaintext; code_hash is SHA-256 of the code.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal, Optional

from schemas.models.base import StringIdDoc
from shared.datetime_utils import ensure_utc, utcnow

Purpose = Literal["registration", "login"]
IdentifierType = Literal["email", "phone"]

PURPOSE_REGISTRATION = "registration"
PURPOSE_LOGIN = "login"


@dataclass(frozen=True)
class OtpRecord:
    identifier: str
    identifier_type: str
    code_hash: str
    expires_at: datetime
    attempts: int = 0
    verified: bool = False

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= ensure_utc(self.expires_at)


@dataclass(frozen=True)
class SessionRecord:
    """A verification session: which channels must be proven, and for whom.

    expires_at bounds the whole session in storage. Each OtpRecord carries its
    own, shorter, code expiry, so a verified record outlives its code.
    """

    token: str
    purpose: str
    channels: tuple[str, ...]
    expires_at: datetime
    user_id: Optional[str] = None
    password_hash: Optional[str] = None
    records: dict[str, OtpRecord] = field(default_factory=dict)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= ensure_utc(self.expires_at)

    @property
    def fully_verified(self) -> bool:
        """Every required channel has a record and every record is verified."""
        return all(
            ch in self.records and self.records[ch].verified for ch in self.channels
        )


class VerificationSessionDoc(StringIdDoc):
    """Document model for the `verification-sessions` collection.

    _id is the opaque session token.
    """

    purpose: Purpose
    channels: list[IdentifierType]
    expires_at: datetime
    user_id: Optional[str] = None
    password_hash: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_record(self, records: Optional[dict[str, OtpRecord]] = None) -> SessionRecord:
        return SessionRecord(
            token=self.id or "",
            purpose=self.purpose,
            channels=tuple(self.channels),
            expires_at=ensure_utc(self.expires_at),
            user_id=self.user_id,
            password_hash=self.password_hash,
            records=records or {},
        )


class VerificationCodeDoc(StringIdDoc):
    """Document model for the `verification-codes` collection.

    _id is "{session_token}:{identifier_type}", so each session holds at most
    one code per channel and a resend overwrites in place.
    """

    session_token: str
    identifier_type: IdentifierType
    identifier: str
    code_hash: str
    expires_at: datetime
    attempts: int = 0
    verified: bool = False
    # TTL index field; follows the owning session, not the code's expiry
    purge_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @staticmethod
    def doc_id(session_token: str, identifier_type: str) -> str:
        return f"{session_token}:{identifier_type}"

    def to_record(self) -> OtpRecord:
        return OtpRecord(
            identifier=self.identifier,
            identifier_type=self.identifier_type,
            code_hash=self.code_hash,
            expires_at=ensure_utc(self.expires_at),
            attempts=self.attempts,
            verified=self.verified,
        )
