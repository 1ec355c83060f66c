"""
Domain entities for the market-price bounded context.

Entities represent tracked instruments and the ephemeral values that
flow through a synchronization run.
They contain no framework imports and no IO operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class UpdateType(str, Enum):
    """Kind of synchronization pass."""

    REGULAR = "regular"
    CLOSING = "closing"


class JobType(str, Enum):
    """Category of a scheduled job, reported by the scheduler status."""

    HOURLY = "hourly"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    CLOSING = "closing"
    AD_HOC = "ad_hoc"


class ValuationStatus(str, Enum):
    """Per-portfolio outcome tag returned by the valuation collaborator."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class TrackedInstrument:
    """An exchange-listed instrument whose prices are kept in sync.

    Identity is the (exchange, symbol) pair. The pipeline owns the price
    fields only; creation and deactivation happen elsewhere.
    """

    id: int
    symbol: str
    exchange: str
    current_price: Optional[Decimal] = None
    previous_price: Optional[Decimal] = None
    today_closing_price: Optional[Decimal] = None
    closing_price_updated_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    is_active: bool = True

    @property
    def instrument_key(self) -> str:
        """Provider lookup key, e.g. ``NSE:RELIANCE``."""
        return f"{self.exchange}:{self.symbol}"


@dataclass(frozen=True)
class FetchOutcome:
    """Result of fetching one instrument's price within a run.

    Exactly one of ``price`` and ``error`` is set.
    """

    instrument: TrackedInstrument
    price: Optional[Decimal] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.price is not None


@dataclass(frozen=True)
class InstrumentWrite:
    """A conditional update for a single instrument row."""

    instrument_id: int
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FailedFetch:
    """An instrument whose price could not be fetched in a run."""

    symbol: str
    exchange: str
    error: str


@dataclass(frozen=True)
class ValuationOutcome:
    """Outcome of revaluing one portfolio."""

    entity_id: str
    status: ValuationStatus
    detail: Optional[str] = None
    value: Optional[Decimal] = None

    @property
    def failed(self) -> bool:
        return self.status is ValuationStatus.FAILED


@dataclass(frozen=True)
class TriggerSpec:
    """A five-field crontab expression evaluated in a timezone."""

    cron: str
    timezone: str = "UTC"
