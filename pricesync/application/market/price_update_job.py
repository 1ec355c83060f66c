"""
Use case: Synchronize instrument prices with the market-data provider.

Input: UpdateType (regular | closing)
Output: RunResult (RunSuccess | RunPartialFailure | RunAborted)
Side effects: Conditional bulk writes to tracked instruments, flushed per
    batch; an alert when some instruments failed.
Failure cases: Raises UnknownUpdateTypeError for an unsupported update type.
    Otherwise never raises: store unavailability, an empty universe and
    mid-run exceptions all come back as RunAborted.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Callable, Optional

from pricesync.application.market.alerts import AlertDispatcher
from pricesync.application.market.batching import (
    DEFAULT_BATCH_DELAY_MS,
    DEFAULT_BATCH_SIZE,
    BatchOrchestrator,
)
from pricesync.application.market.fetcher import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    RetryingFetcher,
)
from pricesync.application.market.provider_session import ProviderSessionManager
from pricesync.application.market.reports import format_run_report
from pricesync.domain.market.entities import (
    FailedFetch,
    InstrumentWrite,
    UpdateType,
)
from pricesync.domain.market.errors import StoreUnavailableError, UnknownUpdateTypeError
from pricesync.domain.market.ports import InstrumentRepository, PriceProvider, Sleeper
from pricesync.domain.market.price_delta import build_instrument_write
from pricesync.domain.market.results import (
    AbortReason,
    RunAborted,
    RunResult,
    completed_run,
)
from pricesync.domain.market.selection import SelectionPolicy, select_all

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PriceUpdateJob:
    """Runs one complete price synchronization pass.

    Each call to ``run`` opens its own provider session and releases it
    before returning, so concurrent runs never share provider state.

    Args:
        repository: Instrument store.
        provider: Market-data provider used to open a per-run session.
        alerts: Optional dispatcher for failure reports.
        closing_selection: Narrows the universe for closing runs. Regular
            runs always fetch every active instrument.
        sleep: Async sleep used for retry and batch delays.
        clock: Returns the timestamp stamped on writes.
    """

    def __init__(
        self,
        repository: InstrumentRepository,
        provider: PriceProvider,
        alerts: Optional[AlertDispatcher] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        closing_selection: SelectionPolicy = select_all,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._provider = provider
        self._alerts = alerts
        self._batch_size = batch_size
        self._batch_delay_ms = batch_delay_ms
        self._max_retries = max_retries
        self._retry_delay_ms = retry_delay_ms
        self._closing_selection = closing_selection
        self._sleep = sleep
        self._clock = clock

    async def run(self, update_type: UpdateType = UpdateType.REGULAR) -> RunResult:
        """Execute the synchronization pass.

        Args:
            update_type: ``regular`` moves current/previous price only;
                ``closing`` also writes the closing snapshot.

        Returns:
            The aggregated run result.

        Raises:
            UnknownUpdateTypeError: If ``update_type`` is not regular/closing.
        """
        try:
            update_type = UpdateType(update_type)
        except ValueError as exc:
            raise UnknownUpdateTypeError(str(update_type)) from exc

        started = time.monotonic()
        total = 0
        updated_count = 0
        failed: list[FailedFetch] = []
        sessions = ProviderSessionManager(self._provider)

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            if not await asyncio.to_thread(self._repository.is_connected):
                error = StoreUnavailableError()
                logger.error("Price update (%s) aborted: %s", update_type.value, error.message)
                return RunAborted(
                    update_type=update_type,
                    duration_ms=elapsed_ms(),
                    error=error.message,
                    reason=AbortReason.STORE_UNAVAILABLE,
                )

            instruments = await asyncio.to_thread(self._repository.load_active_instruments)
            if not instruments:
                logger.info("No active instruments found for update (%s)", update_type.value)
                return RunAborted(
                    update_type=update_type,
                    duration_ms=elapsed_ms(),
                    error="No active instruments found",
                    reason=AbortReason.NO_INSTRUMENTS,
                )

            if update_type is UpdateType.CLOSING:
                instruments = self._closing_selection(instruments)
            total = len(instruments)

            if not instruments:
                logger.info("All active instruments already have today's closing price")
                return completed_run(
                    update_type=update_type,
                    total=0,
                    updated_count=0,
                    failed=[],
                    duration_ms=elapsed_ms(),
                )

            logger.info("Found %d instruments to update (%s)", total, update_type.value)

            fetcher = RetryingFetcher(
                sessions,
                max_retries=self._max_retries,
                retry_delay_ms=self._retry_delay_ms,
                sleep=self._sleep,
            )
            orchestrator = BatchOrchestrator(
                fetcher,
                batch_size=self._batch_size,
                batch_delay_ms=self._batch_delay_ms,
                sleep=self._sleep,
            )

            async with aclosing(orchestrator.iter_batches(instruments)) as batches:
                async for _, _, outcomes in batches:
                    writes: list[InstrumentWrite] = []
                    for outcome in outcomes:
                        instrument = outcome.instrument
                        if outcome.succeeded:
                            write = build_instrument_write(
                                instrument, outcome.price, update_type, self._clock()
                            )
                            if write is not None:
                                writes.append(write)
                        else:
                            logger.error(
                                "Failed to fetch price for %s: %s",
                                instrument.symbol,
                                outcome.error,
                            )
                            failed.append(
                                FailedFetch(
                                    symbol=instrument.symbol,
                                    exchange=instrument.exchange,
                                    error=outcome.error or "unknown error",
                                )
                            )

                    if writes:
                        logger.info("Writing %d updates to database", len(writes))
                        await asyncio.to_thread(
                            self._repository.bulk_conditional_update, writes
                        )
                        updated_count += len(writes)

            result = completed_run(
                update_type=update_type,
                total=total,
                updated_count=updated_count,
                failed=failed,
                duration_ms=elapsed_ms(),
            )
        except Exception as exc:
            logger.exception("Price update (%s) failed", update_type.value)
            return RunAborted(
                update_type=update_type,
                total=total,
                updated_count=updated_count,
                failed=tuple(failed),
                duration_ms=elapsed_ms(),
                error=str(exc) or type(exc).__name__,
                reason=AbortReason.EXCEPTION,
            )
        finally:
            await sessions.cleanup()

        logger.info(
            "Processed %d symbols (%d updated, %d failed) in %dms",
            result.total,
            result.updated_count,
            len(result.failed),
            result.duration_ms,
        )
        if result.failed and self._alerts is not None:
            subject, html = format_run_report(result)
            await self._alerts.send(subject, html)

        return result
