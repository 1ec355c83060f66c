"""
Tests for JobScheduler and JobRegistry.

The clock is a FakeTriggerPort, so activation, replacement and firing
are observed directly without waiting on real time.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import FakeInstrumentRepository, FakeTriggerHandle
from pricesync.application.market.alerts import AlertDispatcher
from pricesync.application.market.scheduler import (
    AD_HOC_PREFIX,
    JobRegistry,
    JobScheduler,
    RegisteredJob,
    default_job_definitions,
)
from pricesync.domain.market.entities import TriggerSpec, UpdateType
from pricesync.domain.market.errors import JobNotFoundError, UnknownUpdateTypeError
from pricesync.domain.market.results import SequenceResult, SequenceStage, completed_run

REGULAR_RESULT = completed_run(UpdateType.REGULAR, 1, 1, [], 5)
SEQUENCE_RESULT = SequenceResult(success=True, stage=SequenceStage.VALUATION)
JOB_NAMES = ["Hourly Update", "Morning Update", "Afternoon Update", "Closing Price Update"]


def _scheduler(trigger_port, repository=None, notifier=None):
    price_job = MagicMock()
    price_job.run = AsyncMock(return_value=REGULAR_RESULT)
    closing = MagicMock()
    closing.run = AsyncMock(return_value=SEQUENCE_RESULT)
    alerts = AlertDispatcher(notifier, ["ops@example.com"]) if notifier else None
    scheduler = JobScheduler(
        triggers=trigger_port,
        repository=repository or FakeInstrumentRepository(),
        price_job=price_job,
        closing_sequence=closing,
        definitions=default_job_definitions("UTC"),
        alerts=alerts,
    )
    return scheduler, price_job, closing


def _running(scheduler) -> dict[str, bool]:
    return {s.name: s.running for s in scheduler.get_status()}


async def _noop():
    return None


# ══════════════════════════════════════════════════════════════════════
# JobRegistry
# ══════════════════════════════════════════════════════════════════════


class TestJobRegistry:
    def _job(self, name: str) -> RegisteredJob:
        handle = FakeTriggerHandle(name, TriggerSpec("0 * * * *"), _noop)
        return RegisteredJob(name, "ad_hoc", handle.spec, handle)

    def test_insert_replaces_and_discards_previous(self) -> None:
        registry = JobRegistry()
        first, second = self._job("X"), self._job("X")

        registry.insert(first)
        registry.insert(second)

        assert len(registry) == 1
        assert registry.get("X") is second
        assert first.handle.discarded

    def test_discard_missing_returns_false(self) -> None:
        assert JobRegistry().discard("nope") is False

    def test_clear_discards_everything(self) -> None:
        registry = JobRegistry()
        jobs = [self._job("A"), self._job("B")]
        for job in jobs:
            registry.insert(job)

        registry.clear()

        assert len(registry) == 0
        assert all(j.handle.discarded for j in jobs)


# ══════════════════════════════════════════════════════════════════════
# Lifecycle
# ══════════════════════════════════════════════════════════════════════


class TestLifecycle:
    def test_default_definitions(self) -> None:
        definitions = default_job_definitions("Asia/Kolkata")
        assert [d.name for d in definitions] == JOB_NAMES
        assert definitions[0].trigger_spec == TriggerSpec("0 * * * *", "Asia/Kolkata")
        assert definitions[3].update_type is UpdateType.CLOSING

    def test_register_creates_stopped_jobs(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)

        scheduler.register()

        assert scheduler.registered
        assert _running(scheduler) == {name: False for name in JOB_NAMES}
        assert [s.type for s in scheduler.get_status()] == [
            "hourly",
            "morning",
            "afternoon",
            "closing",
        ]

    def test_register_twice_keeps_one_trigger_per_job(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)

        scheduler.register()
        scheduler.register()

        assert len(scheduler.get_status()) == 4
        assert all(len(trigger_port.live(name)) == 1 for name in JOB_NAMES)

    def test_start_activates_when_connected(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)

        scheduler.start()

        assert all(_running(scheduler).values())

    def test_stop_deactivates_everything(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)
        scheduler.start()
        scheduler.schedule_ad_hoc("X", TriggerSpec("*/5 * * * *"), _noop)

        scheduler.stop()

        assert not any(_running(scheduler).values())

    def test_restart_after_stop(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)
        scheduler.start()
        scheduler.stop()

        scheduler.start()

        assert all(_running(scheduler)[name] for name in JOB_NAMES)

    def test_start_defers_until_store_connects(self, trigger_port) -> None:
        repository = FakeInstrumentRepository(connected=False)
        scheduler, _, _ = _scheduler(trigger_port, repository)

        scheduler.start()
        assert scheduler.awaiting_connection
        assert not any(_running(scheduler).values())

        repository.connect()

        assert not scheduler.awaiting_connection
        assert all(_running(scheduler).values())

    def test_repeated_start_subscribes_once(self, trigger_port) -> None:
        repository = FakeInstrumentRepository(connected=False)
        scheduler, _, _ = _scheduler(trigger_port, repository)

        scheduler.start()
        scheduler.start()

        assert len(repository.callbacks) == 1

    def test_stop_before_connection_prevents_activation(self, trigger_port) -> None:
        repository = FakeInstrumentRepository(connected=False)
        scheduler, _, _ = _scheduler(trigger_port, repository)

        scheduler.start()
        scheduler.stop()
        repository.connect()

        assert not any(_running(scheduler).values())


# ══════════════════════════════════════════════════════════════════════
# Ad hoc jobs
# ══════════════════════════════════════════════════════════════════════


class TestAdHocJobs:
    def test_schedule_activates_immediately(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)

        status = scheduler.schedule_ad_hoc("X", TriggerSpec("*/5 * * * *"), _noop)

        assert status.name == "X"
        assert status.type == "ad_hoc"
        assert status.running
        assert trigger_port.handles[-1].name == f"{AD_HOC_PREFIX}X"

    def test_rescheduling_leaves_one_live_trigger(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)

        scheduler.schedule_ad_hoc("X", TriggerSpec("*/5 * * * *"), _noop)
        scheduler.schedule_ad_hoc("X", TriggerSpec("*/10 * * * *"), _noop)

        live = trigger_port.live(f"{AD_HOC_PREFIX}X")
        assert len(live) == 1
        assert live[0].spec.cron == "*/10 * * * *"
        assert live[0].running
        assert [s.name for s in scheduler.get_status()] == ["X"]

    def test_ad_hoc_name_may_match_a_registered_job(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)
        scheduler.start()

        scheduler.schedule_ad_hoc("Hourly Update", TriggerSpec("*/5 * * * *"), _noop)

        assert len(trigger_port.live("Hourly Update")) == 1
        assert len(scheduler.get_status()) == 5

    def test_cancel_removes_job(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)
        scheduler.schedule_ad_hoc("X", TriggerSpec("*/5 * * * *"), _noop)

        scheduler.cancel_ad_hoc("X")

        assert scheduler.get_status() == []
        assert trigger_port.handles[-1].discarded

    def test_cancel_unknown_raises(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)
        with pytest.raises(JobNotFoundError):
            scheduler.cancel_ad_hoc("missing")

    @pytest.mark.asyncio
    async def test_crashing_ad_hoc_callback_is_contained(self, trigger_port, notifier) -> None:
        scheduler, _, _ = _scheduler(trigger_port, notifier=notifier)

        async def explode():
            raise RuntimeError("kaboom")

        scheduler.schedule_ad_hoc("X", TriggerSpec("*/5 * * * *"), explode)

        assert await trigger_port.handles[-1].fire() is None
        assert notifier.subjects == ["CRITICAL: X job crashed"]


# ══════════════════════════════════════════════════════════════════════
# Job bodies and manual runs
# ══════════════════════════════════════════════════════════════════════


class TestJobBodies:
    @pytest.mark.asyncio
    async def test_regular_job_fires_price_update(self, trigger_port) -> None:
        scheduler, price_job, closing = _scheduler(trigger_port)
        scheduler.register()

        result = await trigger_port.live("Hourly Update")[0].fire()

        assert result is REGULAR_RESULT
        price_job.run.assert_awaited_once_with(UpdateType.REGULAR)
        closing.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_closing_job_fires_sequence(self, trigger_port) -> None:
        scheduler, price_job, closing = _scheduler(trigger_port)
        scheduler.register()

        result = await trigger_port.live("Closing Price Update")[0].fire()

        assert result is SEQUENCE_RESULT
        price_job.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_crashing_job_body_returns_none(self, trigger_port, notifier) -> None:
        scheduler, price_job, _ = _scheduler(trigger_port, notifier=notifier)
        price_job.run.side_effect = RuntimeError("provider exploded")
        scheduler.register()

        result = await trigger_port.live("Morning Update")[0].fire()

        assert result is None
        assert notifier.subjects == ["CRITICAL: Morning Update job crashed"]

    @pytest.mark.asyncio
    async def test_manual_regular_trigger(self, trigger_port) -> None:
        scheduler, price_job, _ = _scheduler(trigger_port)

        result = await scheduler.trigger_manual_update("regular")

        assert result is REGULAR_RESULT
        price_job.run.assert_awaited_once_with(UpdateType.REGULAR)

    @pytest.mark.asyncio
    async def test_manual_closing_trigger_runs_sequence(self, trigger_port) -> None:
        scheduler, _, closing = _scheduler(trigger_port)

        result = await scheduler.trigger_manual_update(UpdateType.CLOSING)

        assert result is SEQUENCE_RESULT
        closing.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_manual_trigger_rejects_unknown_type(self, trigger_port) -> None:
        scheduler, price_job, _ = _scheduler(trigger_port)

        with pytest.raises(UnknownUpdateTypeError):
            await scheduler.trigger_manual_update("intraday")
        price_job.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_job_now_by_name(self, trigger_port) -> None:
        scheduler, _, closing = _scheduler(trigger_port)

        result = await scheduler.run_job_now("Closing Price Update")

        assert result is SEQUENCE_RESULT
        closing.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_job_now_unknown_name(self, trigger_port) -> None:
        scheduler, _, _ = _scheduler(trigger_port)
        with pytest.raises(JobNotFoundError):
            await scheduler.run_job_now("Nightly Update")
