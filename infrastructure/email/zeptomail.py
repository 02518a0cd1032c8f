"""ZeptoMail implementation of EmailProvider.

Sends one-time codes through the ZeptoMail REST API over the shared
HttpClient. The HTML body is rendered from templates/emails/otp.html.

Without an API token the provider is in dev mode outside production: the
delivery is logged (code included) and reported as successful, so local
registration flows work without mail credentials.
"""

import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.datetime_utils import humanize_seconds
from shared.logging import get_logger, mask

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.in/v1.1/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_url: str = "https://sentinel.app",
        app_name: str = "Sentinel",
        dev_mode: bool = False,
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_url = app_url
        self._app_name = app_name
        self._dev_mode = dev_mode
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    @property
    def configured(self) -> bool:
        return bool(self._settings.zepto_api_token)

    async def _send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": to_email, "name": to_email}}],
            "subject": subject,
            "htmlbody": html_body,
        }
        if text_body:
            payload["textbody"] = text_body

        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"

        headers = {"Authorization": token, "Content-Type": "application/json"}

        try:
            response = await self._http.post(
                _ZEPTO_API_URL, json=payload, headers=headers
            )
        except Exception as e:
            log.error(
                "email_send_error",
                to_email=mask(to_email),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code in (200, 201, 202):
            log.info("email_sent_success", to_email=mask(to_email))
            return True
        log.error(
            "email_sent_failed",
            to_email=mask(to_email),
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False

    async def send_email_otp(
        self, email: str, code: str, expires_in_seconds: int = 300
    ) -> bool:
        if not self.configured:
            if self._dev_mode:
                log.info("email_otp_dev_delivery", to_email=mask(email), dev_code=code)
                return True
            log.error("zepto_mail_send_failed", reason="token_not_configured")
            return False

        expires_in = humanize_seconds(expires_in_seconds)
        subject = f"Your {self._app_name} verification code"
        template = self._jinja.get_template("otp.html")
        html_body = template.render(
            otp_code=code,
            expires_in=expires_in,
            app_name=self._app_name,
            app_url=self._app_url,
        )
        text_body = (
            f"Your {self._app_name} verification code is: {code}\n\n"
            f"This code expires in {expires_in}."
        )
        return await self._send(email, subject, html_body, text_body)
