"""
Adapter: Tracked instrument repository.

Implements InstrumentRepository port.
Reads active instruments and applies the pipeline's conditional price
writes to the tracked_instruments table.
"""

import logging
from typing import Callable

from sqlalchemy import bindparam, event, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pricesync.domain.market.entities import InstrumentWrite, TrackedInstrument
from pricesync.domain.market.ports import InstrumentRepository
from pricesync.infrastructure.market.tables import tracked_instruments

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = frozenset(
    {
        "current_price",
        "previous_price",
        "today_closing_price",
        "closing_price_updated_at",
        "last_updated",
    }
)


class SqlInstrumentRepository(InstrumentRepository):
    """SQLAlchemy adapter for the tracked_instruments table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def is_connected(self) -> bool:
        """Run a trivial query; any driver error means not connected."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Database liveness probe failed: %s", exc)
            return False
        return True

    def once_connected(self, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` the first time the pool opens a connection."""

        def _on_connect(_dbapi_connection, _connection_record) -> None:
            try:
                callback()
            except Exception:
                logger.exception("once_connected callback failed")

        event.listen(self._engine, "connect", _on_connect, once=True)

    def load_active_instruments(self) -> list[TrackedInstrument]:
        t = tracked_instruments
        query = (
            select(
                t.c.id,
                t.c.symbol,
                t.c.exchange,
                t.c.current_price,
                t.c.today_closing_price,
                t.c.closing_price_updated_at,
            )
            .where(t.c.is_active.is_(True))
            .order_by(t.c.id)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query).mappings().all()

        return [
            TrackedInstrument(
                id=row["id"],
                symbol=row["symbol"],
                exchange=row["exchange"],
                current_price=row["current_price"],
                today_closing_price=row["today_closing_price"],
                closing_price_updated_at=row["closing_price_updated_at"],
            )
            for row in rows
        ]

    def bulk_conditional_update(self, writes: list[InstrumentWrite]) -> int:
        """Apply every write in a single transaction.

        Writes are grouped by the set of fields they touch so each group is
        one executemany round trip.
        """
        if not writes:
            return 0

        groups: dict[tuple[str, ...], list[dict]] = {}
        for write in writes:
            unknown = set(write.fields) - WRITABLE_FIELDS
            if unknown:
                raise ValueError(f"Refusing to write non-price fields: {sorted(unknown)}")
            columns = tuple(sorted(write.fields))
            params = {f"p_{name}": value for name, value in write.fields.items()}
            params["p_id"] = write.instrument_id
            groups.setdefault(columns, []).append(params)

        t = tracked_instruments
        matched = 0
        with self._engine.begin() as conn:
            for columns, rows in groups.items():
                stmt = (
                    update(t)
                    .where(t.c.id == bindparam("p_id"))
                    .values({name: bindparam(f"p_{name}") for name in columns})
                )
                result = conn.execute(stmt, rows)
                matched += result.rowcount if result.rowcount and result.rowcount > 0 else 0

        logger.debug("Bulk update applied %d writes (%d rows matched)", len(writes), matched)
        return matched
