"""
SQLAlchemy Core table definitions for the market context.

Only the columns the pipeline reads or writes are declared. Instruments
are created and deactivated by the admin service; portfolios and holdings
are owned by the portfolio service.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
)

PRICE = Numeric(18, 4)

metadata = MetaData()

tracked_instruments = Table(
    "tracked_instruments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("symbol", String(32), nullable=False),
    Column("exchange", String(16), nullable=False),
    Column("name", String(255)),
    Column("current_price", PRICE),
    Column("previous_price", PRICE),
    Column("today_closing_price", PRICE),
    Column("closing_price_updated_at", DateTime(timezone=True)),
    Column("last_updated", DateTime(timezone=True)),
    Column("is_active", Boolean, nullable=False, default=True),
    UniqueConstraint("exchange", "symbol", name="uq_tracked_instruments_exchange_symbol"),
)

portfolios = Table(
    "portfolios",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("cash_balance", Numeric(18, 2), nullable=False, default=0),
    Column("current_value", Numeric(18, 2)),
)

portfolio_holdings = Table(
    "portfolio_holdings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("portfolio_id", Integer, ForeignKey("portfolios.id"), nullable=False),
    Column("symbol", String(32), nullable=False),
    Column("exchange", String(16), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("buy_price", PRICE, nullable=False),
)

portfolio_value_logs = Table(
    "portfolio_value_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("portfolio_id", Integer, ForeignKey("portfolios.id"), nullable=False),
    Column("log_date", Date, nullable=False),
    Column("portfolio_value", Numeric(18, 2), nullable=False),
    Column("cash_remaining", Numeric(18, 2), nullable=False),
    Column("used_closing_prices", Boolean, nullable=False, default=False),
    Column("logged_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("portfolio_id", "log_date", name="uq_portfolio_value_logs_day"),
)
