"""
Instrument selection policies.

A policy narrows the loaded active universe to the instruments a run
should fetch. The closing run defaults to the whole universe; a
staleness filter can be injected instead.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from pricesync.domain.market.entities import TrackedInstrument

SelectionPolicy = Callable[[list[TrackedInstrument]], list[TrackedInstrument]]


def select_all(instruments: list[TrackedInstrument]) -> list[TrackedInstrument]:
    """Keep every loaded instrument."""
    return list(instruments)


class StaleSinceStartOfDay:
    """Keep instruments whose closing price was not set since local midnight.

    Args:
        tz_name: IANA timezone that defines "today".
        clock: Returns the current aware datetime. Defaults to UTC now.
    """

    def __init__(
        self,
        tz_name: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._tz = ZoneInfo(tz_name)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def start_of_day(self) -> datetime:
        local_now = self._clock().astimezone(self._tz)
        return local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    def __call__(self, instruments: list[TrackedInstrument]) -> list[TrackedInstrument]:
        cutoff = self.start_of_day()
        return [
            i
            for i in instruments
            if i.closing_price_updated_at is None
            or _as_aware(i.closing_price_updated_at) < cutoff
        ]


def _as_aware(value: datetime) -> datetime:
    # Naive timestamps from the store are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
