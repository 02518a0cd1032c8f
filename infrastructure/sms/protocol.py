"""SmsProvider protocol. Services depend on this, not on Twilio."""

from typing import Protocol


class SmsProvider(Protocol):
    async def send_sms_otp(
        self, phone: str, code: str, expires_in_seconds: int = 300
    ) -> bool: ...
