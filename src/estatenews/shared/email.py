"""Transactional email delivery via the Mailgun HTTP API."""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Protocol

from pydantic import BaseModel

from estatenews.config import EstateNewsConfig
from estatenews.shared.errors import EmailSendError

logger = logging.getLogger(__name__)


class EmailMessage(BaseModel):
    """One outgoing email."""

    to: str
    subject: str
    text: str
    html: str | None = None


class EmailTransport(Protocol):
    """Sends one message and returns the provider's message id."""

    def send(self, message: EmailMessage) -> str: ...


class MailgunTransport:
    """Client for the Mailgun messages endpoint."""

    def __init__(
        self,
        api_key: str,
        domain: str,
        *,
        host: str = "https://api.eu.mailgun.net",
        from_name: str = "Estate News",
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.domain = domain
        self.host = host.rstrip("/")
        self.sender = f"{from_name} <noreply@{domain}>"
        self.timeout = timeout

    def send(self, message: EmailMessage) -> str:
        """Send a message.

        Raises:
            EmailSendError: On a non-2xx response or transport failure.
        """
        form = {
            "from": self.sender,
            "to": message.to,
            "subject": message.subject,
            "text": message.text,
            "html": message.html or message.text,
        }
        credentials = base64.b64encode(f"api:{self.api_key}".encode()).decode("ascii")
        req = urllib.request.Request(
            f"{self.host}/v3/{self.domain}/messages",
            data=urllib.parse.urlencode(form).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Basic {credentials}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8") or "{}")
        except urllib.error.HTTPError as exc:
            raise EmailSendError(f"Mailgun rejected message to {message.to}: HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise EmailSendError(f"Mailgun request failed for {message.to}: {exc}") from exc

        message_id = str(payload.get("id", ""))
        logger.debug("Sent email to %s (id=%s)", message.to, message_id)
        return message_id


def create_email_transport(config: EstateNewsConfig) -> EmailTransport:
    """Build the Mailgun transport.

    Raises:
        ConfigurationError: If the Mailgun key or domain is missing.
    """
    config.require_email()
    return MailgunTransport(
        config.email.mailgun_api_key,
        config.email.mailgun_domain,
        host=config.email.mailgun_host,
        from_name=config.email.from_name,
    )
