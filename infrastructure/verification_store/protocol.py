"""Storage backend interface the verification store routes between."""

from datetime import datetime
from typing import Optional, Protocol

from schemas.models.verification import OtpRecord, SessionRecord


class VerificationBackend(Protocol):
    name: str

    async def save_session(self, session: SessionRecord) -> None: ...

    async def get_session(self, token: str) -> Optional[SessionRecord]: ...

    async def delete_session(self, token: str) -> None: ...

    async def consume_session(self, token: str) -> bool: ...

    async def get_record(
        self, token: str, identifier_type: str
    ) -> Optional[OtpRecord]: ...

    async def put_record(
        self, token: str, record: OtpRecord, purge_at: datetime
    ) -> None: ...

    async def reserve_attempt(
        self, token: str, identifier_type: str
    ) -> Optional[int]: ...

    async def refund_attempt(self, token: str, identifier_type: str) -> None: ...

    async def mark_verified(self, token: str, identifier_type: str) -> bool: ...
