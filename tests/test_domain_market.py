"""
Tests for the market domain layer:
    1. build_instrument_write: which fields a fetched price changes
    2. Run results: variant selection, failure rate, serialization
    3. Selection policies: closing-run universe filters

All tests use pure domain objects; no database or network calls.
"""

from datetime import datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfoNotFoundError

import pytest

from fakes import make_instrument
from pricesync.domain.market.entities import (
    FailedFetch,
    UpdateType,
    ValuationOutcome,
    ValuationStatus,
)
from pricesync.domain.market.price_delta import build_instrument_write
from pricesync.domain.market.results import (
    AbortReason,
    RunAborted,
    RunPartialFailure,
    RunResult,
    RunSuccess,
    SequenceResult,
    SequenceStage,
    completed_run,
)
from pricesync.domain.market.selection import StaleSinceStartOfDay, select_all

NOW = datetime(2024, 3, 4, 10, 15, tzinfo=timezone.utc)


# ══════════════════════════════════════════════════════════════════════
# Entities
# ══════════════════════════════════════════════════════════════════════


class TestTrackedInstrument:
    def test_instrument_key_joins_exchange_and_symbol(self) -> None:
        assert make_instrument(1, "RELIANCE").instrument_key == "NSE:RELIANCE"

    def test_valuation_outcome_failed_flag(self) -> None:
        assert ValuationOutcome("p1", ValuationStatus.FAILED).failed
        assert not ValuationOutcome("p1", ValuationStatus.SUCCESS).failed


# ══════════════════════════════════════════════════════════════════════
# Delta rules
# ══════════════════════════════════════════════════════════════════════


class TestBuildInstrumentWrite:
    def test_unchanged_price_on_regular_run_writes_nothing(self) -> None:
        instrument = make_instrument(1, current_price="100.50")
        write = build_instrument_write(instrument, Decimal("100.50"), UpdateType.REGULAR, NOW)
        assert write is None

    def test_changed_price_moves_current_to_previous(self) -> None:
        instrument = make_instrument(1, current_price="100")
        write = build_instrument_write(instrument, Decimal("105"), UpdateType.REGULAR, NOW)

        assert write is not None
        assert write.instrument_id == 1
        assert write.fields == {
            "last_updated": NOW,
            "current_price": Decimal("105"),
            "previous_price": Decimal("100"),
        }

    def test_first_price_sets_previous_to_none(self) -> None:
        instrument = make_instrument(1)
        write = build_instrument_write(instrument, Decimal("42"), UpdateType.REGULAR, NOW)
        assert write.fields["current_price"] == Decimal("42")
        assert write.fields["previous_price"] is None

    def test_closing_run_with_unchanged_price_still_writes_snapshot(self) -> None:
        instrument = make_instrument(1, current_price="100")
        write = build_instrument_write(instrument, Decimal("100"), UpdateType.CLOSING, NOW)

        assert write is not None
        assert write.fields == {
            "last_updated": NOW,
            "today_closing_price": Decimal("100"),
            "closing_price_updated_at": NOW,
        }

    def test_closing_run_with_changed_price_writes_everything(self) -> None:
        instrument = make_instrument(1, current_price="100")
        write = build_instrument_write(instrument, Decimal("99"), UpdateType.CLOSING, NOW)
        assert set(write.fields) == {
            "last_updated",
            "current_price",
            "previous_price",
            "today_closing_price",
            "closing_price_updated_at",
        }

    def test_decimal_equality_ignores_scale(self) -> None:
        instrument = make_instrument(1, current_price="105.0000")
        assert build_instrument_write(instrument, Decimal("105"), UpdateType.REGULAR, NOW) is None


# ══════════════════════════════════════════════════════════════════════
# Results
# ══════════════════════════════════════════════════════════════════════


class TestRunResults:
    def test_completed_run_without_failures_is_success(self) -> None:
        result = completed_run(UpdateType.REGULAR, 10, 4, [], 120)
        assert isinstance(result, RunSuccess)
        assert result.success
        assert result.kind == "success"

    def test_completed_run_with_failures_is_partial(self) -> None:
        failed = [FailedFetch("TCS", "NSE", "timeout")]
        result = completed_run(UpdateType.CLOSING, 4, 3, failed, 50)
        assert isinstance(result, RunPartialFailure)
        assert result.success
        assert result.failure_rate == 25.0

    def test_failure_rate_rounds_to_two_places(self) -> None:
        failed = [FailedFetch("A", "NSE", "x")]
        assert completed_run(UpdateType.REGULAR, 3, 2, failed, 1).failure_rate == 33.33

    def test_base_result_is_not_instantiable(self) -> None:
        with pytest.raises(TypeError):
            RunResult(UpdateType.REGULAR)

    def test_failure_rate_of_empty_run_is_zero(self) -> None:
        result = RunAborted(UpdateType.REGULAR, reason=AbortReason.NO_INSTRUMENTS)
        assert result.failure_rate == 0.0

    def test_aborted_is_not_success_and_serializes_reason(self) -> None:
        result = RunAborted(
            UpdateType.REGULAR,
            error="Database not connected",
            reason=AbortReason.STORE_UNAVAILABLE,
        )
        data = result.to_dict()
        assert not result.success
        assert data["kind"] == "aborted"
        assert data["reason"] == "store_unavailable"
        assert data["updated_count"] == 0

    def test_to_dict_lists_failures(self) -> None:
        result = completed_run(
            UpdateType.REGULAR, 2, 1, [FailedFetch("INFY", "NSE", "no result")], 5
        )
        assert result.to_dict()["failed"] == [
            {"symbol": "INFY", "exchange": "NSE", "error": "no result"}
        ]

    def test_sequence_result_serializes_nested_results(self) -> None:
        closing = completed_run(UpdateType.CLOSING, 1, 1, [], 5)
        result = SequenceResult(
            success=True,
            stage=SequenceStage.VALUATION,
            closing_result=closing,
            valuation_result=(ValuationOutcome("7", ValuationStatus.FAILED, "boom"),),
            failed_count=1,
        )
        data = result.to_dict()
        assert data["stage"] == "valuation"
        assert data["closing_result"]["kind"] == "success"
        assert data["valuation_result"] == [
            {"entity_id": "7", "status": "failed", "detail": "boom"}
        ]


# ══════════════════════════════════════════════════════════════════════
# Selection policies
# ══════════════════════════════════════════════════════════════════════


class TestSelectionPolicies:
    def test_select_all_returns_a_copy(self) -> None:
        instruments = [make_instrument(1), make_instrument(2)]
        selected = select_all(instruments)
        assert selected == instruments
        assert selected is not instruments

    def test_stale_since_start_of_day_uses_local_midnight(self) -> None:
        # 10:15 UTC is 15:45 in Kolkata; local midnight is 18:30 UTC the day before.
        policy = StaleSinceStartOfDay("Asia/Kolkata", clock=lambda: NOW)
        fresh = make_instrument(
            1, closing_price_updated_at=datetime(2024, 3, 3, 19, 0, tzinfo=timezone.utc)
        )
        stale = make_instrument(
            2, closing_price_updated_at=datetime(2024, 3, 3, 18, 0, tzinfo=timezone.utc)
        )
        never = make_instrument(3)

        assert [i.id for i in policy([fresh, stale, never])] == [2, 3]

    def test_naive_timestamps_are_treated_as_utc(self) -> None:
        policy = StaleSinceStartOfDay("UTC", clock=lambda: NOW)
        today = make_instrument(1, closing_price_updated_at=datetime(2024, 3, 4, 1, 0))
        yesterday = make_instrument(2, closing_price_updated_at=datetime(2024, 3, 3, 23, 0))
        assert [i.id for i in policy([today, yesterday])] == [2]

    def test_unknown_timezone_is_rejected(self) -> None:
        with pytest.raises(ZoneInfoNotFoundError):
            StaleSinceStartOfDay("Mars/Olympus")
