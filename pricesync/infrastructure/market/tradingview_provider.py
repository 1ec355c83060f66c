"""
Adapter: TradingView market-data provider.

Implements the PriceProvider / PriceProviderSession ports on top of the
TradingView scanner endpoint. A session owns one httpx.AsyncClient and is
closed at the end of each run.

Request:
    POST {base_url}/{screener}/scan
    {"symbols": {"tickers": ["NSE:TCS"], "query": {"types": []}},
     "columns": ["close"]}

Response:
    {"totalCount": 1, "data": [{"s": "NSE:TCS", "d": [3871.5]}]}
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from pricesync.domain.market.errors import PriceFetchError
from pricesync.domain.market.ports import PriceProvider, PriceProviderSession

logger = logging.getLogger(__name__)

PRICE_COLUMN = "close"
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": "pricesync/0.1",
}


class TradingViewSession(PriceProviderSession):
    """One HTTP client bound to a scanner screener."""

    def __init__(self, client: httpx.AsyncClient, screener: str) -> None:
        self._client = client
        self._screener = screener

    async def fetch(self, instrument_key: str) -> Decimal:
        payload = {
            "symbols": {"tickers": [instrument_key], "query": {"types": []}},
            "columns": [PRICE_COLUMN],
        }
        try:
            resp = await self._client.post(f"/{self._screener}/scan", json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            raise PriceFetchError(instrument_key, f"provider error: {exc}") from exc
        except ValueError as exc:
            raise PriceFetchError(instrument_key, "invalid JSON response") from exc

        rows = body.get("data") if isinstance(body, dict) else None
        if not rows:
            raise PriceFetchError(instrument_key, "no result returned")

        values = rows[0].get("d") or []
        raw = values[0] if values else None
        if raw is None:
            raise PriceFetchError(instrument_key, f"missing '{PRICE_COLUMN}' field")

        try:
            return Decimal(str(raw))
        except InvalidOperation as exc:
            raise PriceFetchError(instrument_key, f"unparseable price {raw!r}") from exc

    async def close(self) -> None:
        await self._client.aclose()


class TradingViewPriceProvider(PriceProvider):
    """Opens scanner sessions.

    Args:
        base_url: Scanner root, e.g. ``https://scanner.tradingview.com``.
        screener: Market screener, e.g. ``india`` for NSE/BSE symbols.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        screener: str = "india",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._screener = screener
        self._timeout = timeout
        self._transport = transport

    async def open(self) -> TradingViewSession:
        client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=DEFAULT_HEADERS,
            transport=self._transport,
        )
        logger.debug("Opened TradingView session (%s/%s)", self._base_url, self._screener)
        return TradingViewSession(client, self._screener)
