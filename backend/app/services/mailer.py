"""Mail dispatcher — sends a rendered notice through a Resend-compatible HTTP API.

``Mailer.send`` always returns a MailResult; failures are reported through
stable error codes (``missing_credential``, ``missing_sender``,
``invalid_recipient``, ``timeout``, ``network_error``) or
``"<status>: <provider message>"`` for non-success responses.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

MAX_SUBJECT_LENGTH = 200
MAX_BODY_LENGTH = 10000
MAX_ERROR_LENGTH = 300

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class MailResult:
    ok: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


def shorten(value: str, limit: int) -> str:
    """Cut to at most ``limit`` characters, ellipsis included."""
    return value if len(value) <= limit else value[: limit - 1] + "…"


def is_plausible_email(address: Optional[str]) -> bool:
    return bool(address) and bool(_EMAIL_RE.match(address.strip()))


def _provider_error_message(response: httpx.Response) -> str:
    """Prefer the JSON ``message``/``error`` field, fall back to the raw body."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return response.text or "Unknown error"


class Mailer:
    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 8.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport

    def send(self, to: str, subject: str, text: str, sender: Optional[str] = None) -> MailResult:
        if not self._api_key:
            return MailResult(ok=False, error="missing_credential")
        from_address = sender or self._sender
        if not from_address:
            return MailResult(ok=False, error="missing_sender")
        if not is_plausible_email(to):
            return MailResult(ok=False, error="invalid_recipient")

        payload = {
            "from": from_address,
            "to": [to.strip()],
            "subject": shorten(subject, MAX_SUBJECT_LENGTH),
            "text": shorten(text, MAX_BODY_LENGTH),
        }

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(
                    self._api_url,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json=payload,
                )
        except httpx.TimeoutException:
            logger.warning("Mail to %s timed out after %ss", to, self._timeout)
            return MailResult(ok=False, error="timeout")
        except httpx.HTTPError as e:
            logger.warning("Mail to %s failed in transport: %s", to, e)
            return MailResult(ok=False, error="network_error")

        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = None
            message_id = data.get("id") if isinstance(data, dict) else None
            logger.info("Mail sent to %s (provider id %s)", to, message_id)
            return MailResult(ok=True, provider_message_id=message_id)

        message = shorten(_provider_error_message(response), MAX_ERROR_LENGTH)
        logger.warning("Mail provider rejected mail to %s: %s %s", to, response.status_code, message)
        return MailResult(ok=False, error=f"{response.status_code}: {message}")


def get_mailer() -> Mailer:
    return Mailer(
        api_key=settings.RESEND_API_KEY,
        sender=settings.MAIL_FROM,
        api_url=settings.RESEND_API_URL,
        timeout=settings.MAIL_TIMEOUT_SECONDS,
    )
