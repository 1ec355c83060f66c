"""
Tests for the APScheduler clock adapter.

The AsyncIOScheduler is never started, so jobs stay pending and nothing
fires; pause/resume/remove still apply to pending jobs.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import FakeInstrumentRepository
from pricesync.application.market.scheduler import JobScheduler, default_job_definitions
from pricesync.domain.market.entities import TriggerSpec
from pricesync.domain.market.errors import InvalidTriggerSpecError
from pricesync.infrastructure.market.apscheduler_trigger import (
    ApschedulerTriggerPort,
    build_scheduler,
    parse_trigger,
)


async def _noop():
    return None


@pytest.fixture
def port() -> ApschedulerTriggerPort:
    return ApschedulerTriggerPort(build_scheduler("UTC"))


class TestParseTrigger:
    def test_valid_crontab(self) -> None:
        trigger = parse_trigger(TriggerSpec("15 10 * * *", "Asia/Kolkata"))
        assert str(trigger.timezone) == "Asia/Kolkata"

    def test_wrong_field_count(self) -> None:
        with pytest.raises(InvalidTriggerSpecError):
            parse_trigger(TriggerSpec("every hour"))

    def test_out_of_range_field(self) -> None:
        with pytest.raises(InvalidTriggerSpecError):
            parse_trigger(TriggerSpec("99 * * * *"))

    def test_unknown_timezone(self) -> None:
        with pytest.raises(InvalidTriggerSpecError):
            parse_trigger(TriggerSpec("0 * * * *", "Nowhere/Atlantis"))


class TestApschedulerTriggerPort:
    def test_added_trigger_starts_paused(self, port) -> None:
        handle = port.add("Hourly Update", TriggerSpec("0 * * * *"), _noop)

        assert handle.name == "Hourly Update"
        assert not handle.running
        assert port.scheduler.get_job("Hourly Update") is not None

    def test_activate_and_deactivate(self, port) -> None:
        handle = port.add("Hourly Update", TriggerSpec("0 * * * *"), _noop)

        handle.activate()
        assert handle.running

        handle.deactivate()
        assert not handle.running
        assert port.scheduler.get_job("Hourly Update") is not None

    def test_discard_removes_job_and_is_idempotent(self, port) -> None:
        handle = port.add("ad_hoc:X", TriggerSpec("*/5 * * * *"), _noop)

        handle.discard()
        handle.discard()

        assert port.scheduler.get_job("ad_hoc:X") is None
        assert not handle.running

    def test_invalid_spec_adds_nothing(self, port) -> None:
        with pytest.raises(InvalidTriggerSpecError):
            port.add("Broken", TriggerSpec("* *"), _noop)
        assert port.scheduler.get_jobs() == []


class TestJobSchedulerOnApscheduler:
    def _scheduler(self, port) -> JobScheduler:
        price_job = MagicMock()
        price_job.run = AsyncMock()
        closing = MagicMock()
        closing.run = AsyncMock()
        return JobScheduler(
            triggers=port,
            repository=FakeInstrumentRepository(),
            price_job=price_job,
            closing_sequence=closing,
            definitions=default_job_definitions("UTC"),
        )

    def test_start_and_stop_toggle_every_job(self, port) -> None:
        scheduler = self._scheduler(port)

        scheduler.start()
        assert all(s.running for s in scheduler.get_status())
        assert len(port.scheduler.get_jobs()) == 4

        scheduler.stop()
        assert not any(s.running for s in scheduler.get_status())

    def test_rescheduled_ad_hoc_job_keeps_one_apscheduler_job(self, port) -> None:
        scheduler = self._scheduler(port)

        scheduler.schedule_ad_hoc("X", TriggerSpec("*/5 * * * *"), _noop)
        scheduler.schedule_ad_hoc("X", TriggerSpec("*/10 * * * *"), _noop)

        ids = [job.id for job in port.scheduler.get_jobs()]
        assert ids == ["ad_hoc:X"]
        assert port.scheduler.get_job("ad_hoc:X").next_run_time is not None
