"""Twilio implementation of SmsProvider.

Posts to the Twilio Messages REST API with HTTP basic auth over the shared
HttpClient. Only 201 Created counts as a successful send.

Without credentials the provider behaves like the email one: dev mode logs
the code and reports success, otherwise the send fails.
"""

from typing import Optional

import httpx

from config import SmsSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger, mask

log = get_logger(__name__)

_TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioSmsProvider:
    def __init__(
        self,
        settings: SmsSettings,
        http_client: HttpClient,
        app_name: str = "Sentinel",
        dev_mode: bool = False,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_name = app_name
        self._dev_mode = dev_mode

    @property
    def messages_url(self) -> str:
        return f"{_TWILIO_API_BASE}/Accounts/{self._settings.twilio_account_sid}/Messages.json"

    async def _send(self, to: str, body: str) -> bool:
        auth = httpx.BasicAuth(
            self._settings.twilio_account_sid, self._settings.twilio_auth_token
        )
        payload = {
            "To": to,
            "From": self._settings.twilio_phone_number,
            "Body": body,
        }
        try:
            response = await self._http.post(self.messages_url, data=payload, auth=auth)
        except Exception as e:
            log.error(
                "sms_send_error",
                to_phone=mask(to),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code == 201:
            log.info("sms_sent_success", to_phone=mask(to))
            return True
        error_code: Optional[str] = None
        try:
            error_code = str(response.json().get("code"))
        except ValueError:
            pass  # non-JSON error body
        log.error(
            "sms_sent_failed",
            to_phone=mask(to),
            status_code=response.status_code,
            provider_error_code=error_code,
        )
        return False

    async def send_sms_otp(
        self, phone: str, code: str, expires_in_seconds: int = 300
    ) -> bool:
        if not self._settings.is_configured:
            if self._dev_mode:
                log.info("sms_otp_dev_delivery", to_phone=mask(phone), dev_code=code)
                return True
            log.error("twilio_send_failed", reason="credentials_not_configured")
            return False

        minutes = max(1, expires_in_seconds // 60)
        body = (
            f"{code} is your {self._app_name} verification code. "
            f"It expires in {minutes} min. Do not share it."
        )
        return await self._send(phone, body)
