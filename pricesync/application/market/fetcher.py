"""
Per-instrument price fetch with bounded retries.

One bad instrument must never abort a batch, so every failure mode
(no session, empty response, missing price, unsupported call, network
error) is treated the same way: retry after a fixed delay, then give up
and report the last error.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation

from pricesync.application.market.provider_session import ProviderSessionManager
from pricesync.domain.market.entities import FetchOutcome, TrackedInstrument
from pricesync.domain.market.errors import PriceFetchError
from pricesync.domain.market.ports import Sleeper

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 2000


class RetryingFetcher:
    """Fetches one instrument's latest price, never raising.

    Args:
        sessions: Session manager bound to the current run.
        max_retries: Total attempts per instrument.
        retry_delay_ms: Fixed sleep between attempts.
        sleep: Async sleep function (injectable for tests).
    """

    def __init__(
        self,
        sessions: ProviderSessionManager,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._sessions = sessions
        self._max_retries = max_retries
        self._retry_delay = retry_delay_ms / 1000
        self._sleep = sleep

    async def fetch(self, instrument: TrackedInstrument) -> FetchOutcome:
        """Fetch the price for ``instrument``.

        Returns:
            FetchOutcome with ``price`` set on success, or ``error`` set to
            the last failure message once all attempts are used.
        """
        key = instrument.instrument_key
        last_error = "Max retries reached"

        for attempt in range(1, self._max_retries + 1):
            try:
                price = await self._attempt(key)
                return FetchOutcome(instrument=instrument, price=price)
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.debug(
                    "Fetch attempt %d/%d for %s failed: %s",
                    attempt,
                    self._max_retries,
                    key,
                    last_error,
                )

            if attempt < self._max_retries:
                await self._sleep(self._retry_delay)

        logger.warning("Giving up on %s after %d attempts: %s", key, self._max_retries, last_error)
        return FetchOutcome(instrument=instrument, error=last_error)

    async def _attempt(self, key: str) -> Decimal:
        session = await self._sessions.ensure()
        raw = await session.fetch(key)
        if raw is None:
            raise PriceFetchError(key, "no price returned")
        try:
            return raw if isinstance(raw, Decimal) else Decimal(str(raw))
        except InvalidOperation as exc:
            raise PriceFetchError(key, f"unparseable price {raw!r}") from exc
