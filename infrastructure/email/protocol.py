"""EmailProvider protocol. Services depend on this, not on ZeptoMail."""

from typing import Protocol


class EmailProvider(Protocol):
    async def send_email_otp(
        self, email: str, code: str, expires_in_seconds: int = 300
    ) -> bool: ...
