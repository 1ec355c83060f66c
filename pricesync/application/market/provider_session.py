"""
Provider session lifecycle.

Holds at most one session to the market-data provider for the duration
of a run. The provider does not tolerate long-lived reuse across runs,
so each run opens a session lazily and drops it when done.

Usage:
    async with ProviderSessionManager(provider) as sessions:
        session = await sessions.ensure()
        price = await session.fetch("NSE:TCS")
"""

import logging
from typing import Optional

from pricesync.domain.market.errors import ProviderSessionError
from pricesync.domain.market.ports import PriceProvider, PriceProviderSession

logger = logging.getLogger(__name__)


class ProviderSessionManager:
    """Lazily opens, reuses and tears down one provider session."""

    def __init__(self, provider: PriceProvider) -> None:
        self._provider = provider
        self._session: Optional[PriceProviderSession] = None

    @property
    def session(self) -> Optional[PriceProviderSession]:
        return self._session

    async def ensure(self) -> PriceProviderSession:
        """Return the current session, opening one if none exists.

        Raises:
            ProviderSessionError: If the provider cannot be set up. No
                half-built session is retained, so the next call retries
                from scratch.
        """
        if self._session is not None:
            return self._session

        try:
            session = await self._provider.open()
        except Exception as exc:
            self._session = None
            logger.warning("Provider session setup failed: %s", exc)
            raise ProviderSessionError(str(exc) or type(exc).__name__) from exc

        self._session = session
        logger.debug("Provider session opened")
        return session

    async def cleanup(self) -> None:
        """Drop the session reference unconditionally."""
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await session.close()
        except Exception:
            logger.warning("Error while closing provider session", exc_info=True)

    async def __aenter__(self) -> "ProviderSessionManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.cleanup()
