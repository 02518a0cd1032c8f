"""One-time-code delivery over email and SMS, always best-effort."""

from __future__ import annotations

from typing import Mapping

from errors import ValidationError
from infrastructure.email.protocol import EmailProvider
from infrastructure.sms.protocol import SmsProvider
from shared.best_effort import gather_best_effort, run_best_effort
from shared.logging import get_logger
from shared.validators import IDENTIFIER_EMAIL, IDENTIFIER_PHONE

log = get_logger(__name__)


class OtpNotifier:
    def __init__(
        self,
        email_provider: EmailProvider,
        sms_provider: SmsProvider,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._email = email_provider
        self._sms = sms_provider
        self._timeout = timeout_seconds

    def _send(self, identifier_type: str, identifier: str, code: str, expires_in: int):
        if identifier_type == IDENTIFIER_EMAIL:
            return self._email.send_email_otp(identifier, code, expires_in)
        if identifier_type == IDENTIFIER_PHONE:
            return self._sms.send_sms_otp(identifier, code, expires_in)
        raise ValidationError("Unsupported identifier type", field="type")

    async def dispatch(
        self, identifier_type: str, identifier: str, code: str, expires_in: int
    ) -> bool:
        """Send one code. Never raises for delivery problems."""
        delivered = await run_best_effort(
            f"otp_{identifier_type}",
            self._send(identifier_type, identifier, code, expires_in),
            self._timeout,
        )
        if not delivered:
            log.warning("otp_delivery_failed", identifier_type=identifier_type)
        return delivered

    async def dispatch_many(
        self, deliveries: Mapping[str, tuple[str, str]], expires_in: int
    ) -> dict[str, bool]:
        """Send several codes concurrently.

        Args:
            deliveries: identifier type → (identifier, code).
            expires_in: Code lifetime in seconds, for the message copy.

        Returns:
            identifier type → delivered flag.
        """
        tasks = {
            f"otp_{kind}": self._send(kind, identifier, code, expires_in)
            for kind, (identifier, code) in deliveries.items()
        }
        results = await gather_best_effort(tasks, self._timeout)
        outcome = {kind: results[f"otp_{kind}"] for kind in deliveries}
        for kind, delivered in outcome.items():
            if not delivered:
                log.warning("otp_delivery_failed", identifier_type=kind)
        return outcome
