"""
Adapters: Operator alert delivery.

Implements the AlertNotifier port over two channels:
    1. SMTP email (the default for price-update and valuation reports)
    2. HTTP webhook POST (for chat-ops relays)

Both raise on delivery failure; AlertDispatcher swallows and logs.
"""

import asyncio
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Optional
from urllib.parse import urlparse

import httpx

from pricesync.domain.market.ports import AlertNotifier

logger = logging.getLogger(__name__)


class SmtpAlertNotifier(AlertNotifier):
    """Sends HTML email through an SMTP relay.

    smtplib is blocking, so delivery runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def _build_message(
        self, recipients: list[str], subject: str, html_body: str
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = ", ".join(recipients)
        message["Subject"] = subject
        message.set_content("This report requires an HTML-capable mail client.")
        message.add_alternative(html_body, subtype="html")
        return message

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password or "")
            smtp.send_message(message)

    async def notify(
        self, recipients: list[str], subject: str, html_body: str
    ) -> None:
        message = self._build_message(recipients, subject, html_body)
        await asyncio.to_thread(self._send, message)


class WebhookAlertNotifier(AlertNotifier):
    """POSTs alerts as JSON to a webhook URL.

    Args:
        url: Full URL (must be http/https).
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport (tests use MockTransport).

    Raises:
        ValueError: If the URL scheme is not http/https.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            msg = f"Invalid webhook URL scheme: {parsed.scheme}"
            raise ValueError(msg)
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def notify(
        self, recipients: list[str], subject: str, html_body: str
    ) -> None:
        payload = {
            "event": "pricesync_alert",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "recipients": recipients,
            "subject": subject,
            "html": html_body,
        }
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.post(
                self._url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "X-PriceSync-Event": "alert",
                },
            )
            resp.raise_for_status()
        logger.debug("Webhook alert delivered to %s", self._url)
