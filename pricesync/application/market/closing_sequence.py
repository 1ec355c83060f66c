"""
Use case: Closing-price update chained into portfolio valuation.

Input: none (always a closing run, valuation with closing prices)
Output: SequenceResult
Side effects: Closing-price writes, portfolio value logs, operator alerts.
Failure cases: Never raises. Each stage has its own retry budget; if the
    closing stage is exhausted the valuation stage is not attempted.

Both stages write absolute values, so re-running the sequence after a
crash is safe.
"""

import asyncio
import logging
import time
from typing import Optional

from pricesync.application.market.alerts import AlertDispatcher
from pricesync.application.market.price_update_job import PriceUpdateJob
from pricesync.application.market.reports import (
    format_critical_alert,
    format_valuation_report,
)
from pricesync.domain.market.entities import UpdateType, ValuationOutcome
from pricesync.domain.market.ports import Sleeper, ValuationPort
from pricesync.domain.market.results import RunResult, SequenceResult, SequenceStage

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 5000


class ClosingSequenceCoordinator:
    """Runs the closing job, then revalues every portfolio.

    Args:
        price_job: Job used for the closing-price stage.
        valuation: Downstream valuation collaborator.
        alerts: Optional dispatcher for failure and critical alerts.
        max_retries: Attempts per stage.
        retry_delay_ms: Sleep between attempts of the same stage.
    """

    def __init__(
        self,
        price_job: PriceUpdateJob,
        valuation: ValuationPort,
        alerts: Optional[AlertDispatcher] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._price_job = price_job
        self._valuation = valuation
        self._alerts = alerts
        self._max_retries = max_retries
        self._retry_delay = retry_delay_ms / 1000
        self._sleep = sleep

    async def run(self) -> SequenceResult:
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        closing_result, closing_error = await self._run_closing_stage()
        if closing_error is not None:
            logger.error(
                "Closing sequence stopped at closing stage after %d attempts: %s",
                self._max_retries,
                closing_error,
            )
            await self._critical("Closing Price Update Failed", closing_error)
            return SequenceResult(
                success=False,
                stage=SequenceStage.CLOSING,
                closing_result=closing_result,
                error=closing_error,
                duration_ms=elapsed_ms(),
            )

        outcomes, valuation_error = await self._run_valuation_stage()
        if valuation_error is not None:
            logger.error(
                "Closing sequence stopped at valuation stage after %d attempts: %s",
                self._max_retries,
                valuation_error,
            )
            await self._critical("Portfolio Valuation Job Failed", valuation_error)
            return SequenceResult(
                success=False,
                stage=SequenceStage.VALUATION,
                closing_result=closing_result,
                error=valuation_error,
                duration_ms=elapsed_ms(),
            )

        failed_count = sum(1 for o in outcomes if o.failed)
        logger.info(
            "Valuation results: %d successful, %d failed",
            len(outcomes) - failed_count,
            failed_count,
        )
        if failed_count and self._alerts is not None:
            subject, html = format_valuation_report(outcomes)
            await self._alerts.send(subject, html)

        return SequenceResult(
            success=True,
            stage=SequenceStage.VALUATION,
            closing_result=closing_result,
            valuation_result=tuple(outcomes),
            failed_count=failed_count,
            duration_ms=elapsed_ms(),
        )

    async def _run_closing_stage(self) -> tuple[Optional[RunResult], Optional[str]]:
        result: Optional[RunResult] = None
        error = "closing stage not attempted"

        for attempt in range(1, self._max_retries + 1):
            logger.info("Closing stage attempt %d/%d", attempt, self._max_retries)
            try:
                result = await self._price_job.run(UpdateType.CLOSING)
            except Exception as exc:
                error = str(exc) or type(exc).__name__
                logger.warning("Closing attempt %d raised: %s", attempt, error)
            else:
                if result.success:
                    return result, None
                error = result.error or "closing price update failed"
                logger.warning("Closing attempt %d failed: %s", attempt, error)

            if attempt < self._max_retries:
                logger.info("Retrying closing stage in %.1fs", self._retry_delay)
                await self._sleep(self._retry_delay)

        return result, error

    async def _run_valuation_stage(
        self,
    ) -> tuple[list[ValuationOutcome], Optional[str]]:
        error = "valuation stage not attempted"

        for attempt in range(1, self._max_retries + 1):
            logger.info("Valuation stage attempt %d/%d", attempt, self._max_retries)
            try:
                outcomes = await asyncio.to_thread(
                    self._valuation.revalue_all, True
                )
                return list(outcomes), None
            except Exception as exc:
                error = str(exc) or type(exc).__name__
                logger.warning("Valuation attempt %d failed: %s", attempt, error)

            if attempt < self._max_retries:
                logger.info("Retrying valuation stage in %.1fs", self._retry_delay)
                await self._sleep(self._retry_delay)

        return [], error

    async def _critical(self, title: str, error: str) -> None:
        if self._alerts is None:
            return
        subject, html = format_critical_alert(title, error)
        await self._alerts.send(subject, html)
