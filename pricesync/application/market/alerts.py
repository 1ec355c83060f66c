"""
Best-effort alert dispatch.

Wraps an AlertNotifier so that a failed email or webhook is logged and
dropped. Alerting never changes the outcome of a run.
"""

import logging
from typing import Optional

from pricesync.domain.market.ports import AlertNotifier

logger = logging.getLogger(__name__)


class AlertDispatcher:
    """Sends operator alerts to a fixed recipient list."""

    def __init__(
        self, notifier: Optional[AlertNotifier], recipients: list[str]
    ) -> None:
        self._notifier = notifier
        self._recipients = list(recipients)

    @property
    def enabled(self) -> bool:
        return self._notifier is not None and bool(self._recipients)

    async def send(self, subject: str, html_body: str) -> bool:
        """Deliver an alert. Returns False if disabled or delivery failed."""
        if not self.enabled:
            logger.debug("Alerting disabled, dropping alert: %s", subject)
            return False
        try:
            await self._notifier.notify(self._recipients, subject, html_body)
        except Exception as exc:
            logger.error("Failed to send alert %r: %s", subject, exc)
            return False
        logger.info("Sent alert %r to %d recipient(s)", subject, len(self._recipients))
        return True
