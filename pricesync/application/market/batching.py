"""
Batch orchestration over the instrument universe.

Bounds provider load: the universe is cut into contiguous batches that are
fetched strictly one after another, with a rate-limit pause between them.
Nothing is fetched in parallel; the provider session is stateful.
"""

import asyncio
import logging
import math
from typing import AsyncIterator, Sequence

from pricesync.application.market.fetcher import RetryingFetcher
from pricesync.domain.market.entities import FetchOutcome, TrackedInstrument
from pricesync.domain.market.ports import Sleeper

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_BATCH_DELAY_MS = 1500


def partition(
    instruments: Sequence[TrackedInstrument], batch_size: int
) -> list[list[TrackedInstrument]]:
    """Split ``instruments`` into ``ceil(N / batch_size)`` contiguous slices."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    batch_count = math.ceil(len(instruments) / batch_size)
    return [
        list(instruments[i * batch_size : (i + 1) * batch_size])
        for i in range(batch_count)
    ]


class BatchOrchestrator:
    """Sequences fetch rounds over fixed-size batches."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._fetcher = fetcher
        self._batch_size = batch_size
        self._batch_delay = batch_delay_ms / 1000
        self._sleep = sleep

    async def iter_batches(
        self, instruments: Sequence[TrackedInstrument]
    ) -> AsyncIterator[tuple[int, int, list[FetchOutcome]]]:
        """Yield ``(batch_index, batch_count, outcomes)`` per batch.

        The inter-batch delay runs after the consumer has handled a batch,
        and is skipped after the last one.
        """
        batches = partition(instruments, self._batch_size)
        batch_count = len(batches)

        for index, batch in enumerate(batches):
            logger.info(
                "Processing batch %d/%d with %d instruments",
                index + 1,
                batch_count,
                len(batch),
            )
            outcomes = [await self._fetcher.fetch(instrument) for instrument in batch]
            yield index, batch_count, outcomes

            if index < batch_count - 1:
                await self._sleep(self._batch_delay)

    async def fetch_all(
        self, instruments: Sequence[TrackedInstrument]
    ) -> list[FetchOutcome]:
        """Fetch every instrument and return outcomes in batch order."""
        results: list[FetchOutcome] = []
        async for _, _, outcomes in self.iter_batches(instruments):
            results.extend(outcomes)
        return results
