"""
Port interfaces (ABCs) for the market-price bounded context.

Ports define the contracts that the pipeline requires from the outside world.
Infrastructure adapters implement these interfaces.
The domain layer never depends on concrete implementations.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Awaitable, Callable

from pricesync.domain.market.entities import (
    InstrumentWrite,
    TrackedInstrument,
    TriggerSpec,
    ValuationOutcome,
)

# Async sleep used at every suspension point (retry backoff, batch delay).
Sleeper = Callable[[float], Awaitable[None]]

# Zero-argument coroutine function invoked when a trigger fires.
JobCallback = Callable[[], Awaitable[Any]]


class InstrumentRepository(ABC):
    """Port for reading and updating tracked instrument records.

    Implementations are synchronous; the application layer dispatches
    calls off the event loop.
    """

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True if the store answers a liveness probe."""
        raise NotImplementedError

    @abstractmethod
    def once_connected(self, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` exactly once, the next time the store connects."""
        raise NotImplementedError

    @abstractmethod
    def load_active_instruments(self) -> list[TrackedInstrument]:
        """Return every active instrument, ordered by id."""
        raise NotImplementedError

    @abstractmethod
    def bulk_conditional_update(self, writes: list[InstrumentWrite]) -> int:
        """Apply all writes in one operation.

        Returns:
            Number of rows matched.
        """
        raise NotImplementedError


class PriceProviderSession(ABC):
    """A live handle to the external market-data source."""

    @abstractmethod
    async def fetch(self, instrument_key: str) -> Decimal:
        """Return the latest traded price for ``EXCHANGE:SYMBOL``.

        Raises:
            PriceFetchError: If no usable price is returned.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Release any resources held by the session."""
        raise NotImplementedError


class PriceProvider(ABC):
    """Factory for provider sessions."""

    @abstractmethod
    async def open(self) -> PriceProviderSession:
        """Create and set up a new session."""
        raise NotImplementedError


class ValuationPort(ABC):
    """Port for the downstream portfolio valuation collaborator."""

    @abstractmethod
    def revalue_all(self, use_closing_prices: bool) -> list[ValuationOutcome]:
        """Revalue every portfolio and return one outcome per portfolio."""
        raise NotImplementedError


class AlertNotifier(ABC):
    """Port for best-effort operator alerts."""

    @abstractmethod
    async def notify(
        self, recipients: list[str], subject: str, html_body: str
    ) -> None:
        """Deliver an HTML alert to the given recipients."""
        raise NotImplementedError


class TriggerHandle(ABC):
    """A named time trigger bound to a callback."""

    name: str

    @property
    @abstractmethod
    def running(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def activate(self) -> None:
        """Start firing the callback on schedule."""
        raise NotImplementedError

    @abstractmethod
    def deactivate(self) -> None:
        """Stop firing. The binding stays registered."""
        raise NotImplementedError

    @abstractmethod
    def discard(self) -> None:
        """Deactivate and remove the binding from the clock."""
        raise NotImplementedError


class TriggerPort(ABC):
    """Clock abstraction: binds trigger specs to callbacks."""

    @abstractmethod
    def add(
        self, name: str, spec: TriggerSpec, callback: JobCallback
    ) -> TriggerHandle:
        """Register a stopped trigger.

        Raises:
            InvalidTriggerSpecError: If the spec cannot be parsed.
        """
        raise NotImplementedError
