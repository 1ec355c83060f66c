"""
Delta rules for instrument price writes.

Decides which fields a fetched price changes on a stored instrument.
Every field is written as an absolute value, so applying the same write
twice, or interleaving writes from overlapping runs, never corrupts a row.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pricesync.domain.market.entities import (
    InstrumentWrite,
    TrackedInstrument,
    UpdateType,
)

logger = logging.getLogger(__name__)

LAST_UPDATED = "last_updated"


def build_instrument_write(
    instrument: TrackedInstrument,
    price: Decimal,
    update_type: UpdateType,
    now: datetime,
) -> Optional[InstrumentWrite]:
    """Build the conditional write for one fetched price.

    Args:
        instrument: Instrument as loaded at the start of the run.
        price: Freshly fetched price.
        update_type: Regular runs only move current/previous price;
            closing runs also stamp the closing snapshot.
        now: Timestamp for ``last_updated`` and ``closing_price_updated_at``.

    Returns:
        The write, or None when nothing but ``last_updated`` would change.
    """
    fields: dict = {LAST_UPDATED: now}

    if price != instrument.current_price:
        fields["current_price"] = price
        fields["previous_price"] = instrument.current_price
        logger.info(
            "Price changed for %s: %s -> %s",
            instrument.symbol,
            instrument.current_price,
            price,
        )

    if update_type is UpdateType.CLOSING:
        fields["today_closing_price"] = price
        fields["closing_price_updated_at"] = now
        logger.info("Setting today_closing_price for %s: %s", instrument.symbol, price)

    if len(fields) == 1:
        return None

    return InstrumentWrite(instrument_id=instrument.id, fields=fields)
