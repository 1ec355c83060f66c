"""
Adapter: Portfolio valuation.

Implements ValuationPort. Revalues every portfolio from the prices the
pipeline just wrote and records one value log per portfolio per day.

Valuation rule:
    value = cash_balance + Σ quantity × price
    price = today_closing_price (closing runs) → current_price → buy_price

Each portfolio is revalued in its own transaction, so one bad portfolio
is reported as FAILED without rolling back the others.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import and_, insert, select, update
from sqlalchemy.engine import Connection, Engine

from pricesync.domain.market.entities import ValuationOutcome, ValuationStatus
from pricesync.domain.market.ports import ValuationPort
from pricesync.infrastructure.market.tables import (
    portfolio_holdings,
    portfolio_value_logs,
    portfolios,
    tracked_instruments,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def holding_price(
    buy_price: Decimal,
    current_price: Optional[Decimal],
    closing_price: Optional[Decimal],
    use_closing_prices: bool,
) -> Decimal:
    """Pick the price a holding is valued at."""
    if use_closing_prices and closing_price is not None:
        return Decimal(closing_price)
    if current_price is not None:
        return Decimal(current_price)
    return Decimal(buy_price)


class SqlPortfolioValuationAdapter(ValuationPort):
    """Revalues portfolios directly against the shared database."""

    def __init__(
        self, engine: Engine, clock: Callable[[], datetime] = _utc_now
    ) -> None:
        self._engine = engine
        self._clock = clock

    def revalue_all(self, use_closing_prices: bool) -> list[ValuationOutcome]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(portfolios.c.id).order_by(portfolios.c.id)
            ).all()
        portfolio_ids = [row.id for row in rows]

        outcomes: list[ValuationOutcome] = []
        for portfolio_id in portfolio_ids:
            try:
                with self._engine.begin() as conn:
                    value = self._revalue(conn, portfolio_id, use_closing_prices)
            except Exception as exc:
                logger.error("Valuation failed for portfolio %s: %s", portfolio_id, exc)
                outcomes.append(
                    ValuationOutcome(
                        entity_id=str(portfolio_id),
                        status=ValuationStatus.FAILED,
                        detail=str(exc) or type(exc).__name__,
                    )
                )
                continue
            outcomes.append(
                ValuationOutcome(
                    entity_id=str(portfolio_id),
                    status=ValuationStatus.SUCCESS,
                    value=value,
                )
            )

        failed = sum(1 for o in outcomes if o.failed)
        logger.info(
            "Revalued %d portfolios (%d failed, closing_prices=%s)",
            len(outcomes), failed, use_closing_prices,
        )
        return outcomes

    def _revalue(
        self, conn: Connection, portfolio_id: int, use_closing_prices: bool
    ) -> Decimal:
        cash = conn.execute(
            select(portfolios.c.cash_balance).where(portfolios.c.id == portfolio_id)
        ).scalar_one()

        h = portfolio_holdings
        t = tracked_instruments
        holdings = conn.execute(
            select(
                h.c.quantity,
                h.c.buy_price,
                t.c.current_price,
                t.c.today_closing_price,
            )
            .select_from(
                h.outerjoin(
                    t, and_(t.c.symbol == h.c.symbol, t.c.exchange == h.c.exchange)
                )
            )
            .where(h.c.portfolio_id == portfolio_id)
        ).all()

        holdings_value = sum(
            (
                Decimal(row.quantity)
                * holding_price(
                    row.buy_price,
                    row.current_price,
                    row.today_closing_price,
                    use_closing_prices,
                )
                for row in holdings
            ),
            Decimal("0"),
        )
        cash = Decimal(cash or 0)
        value = (cash + holdings_value).quantize(Decimal("0.01"))

        conn.execute(
            update(portfolios)
            .where(portfolios.c.id == portfolio_id)
            .values(current_value=value)
        )
        self._upsert_daily_log(conn, portfolio_id, value, cash, use_closing_prices)
        return value

    def _upsert_daily_log(
        self,
        conn: Connection,
        portfolio_id: int,
        value: Decimal,
        cash: Decimal,
        use_closing_prices: bool,
    ) -> None:
        now = self._clock()
        logs = portfolio_value_logs
        values = {
            "portfolio_value": value,
            "cash_remaining": cash,
            "used_closing_prices": use_closing_prices,
            "logged_at": now,
        }
        existing = conn.execute(
            select(logs.c.id).where(
                and_(logs.c.portfolio_id == portfolio_id, logs.c.log_date == now.date())
            )
        ).scalar_one_or_none()

        if existing is None:
            conn.execute(
                insert(logs).values(portfolio_id=portfolio_id, log_date=now.date(), **values)
            )
        else:
            conn.execute(update(logs).where(logs.c.id == existing).values(**values))
