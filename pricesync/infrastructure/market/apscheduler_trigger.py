"""
Adapter: APScheduler clock.

Implements TriggerPort on an AsyncIOScheduler. Every trigger is added
paused (``next_run_time=None``); activation resumes it and deactivation
pauses it, so the job stays registered in between.

The scheduler itself is started once in the application lifespan and
may be used before that: APScheduler keeps jobs added to a stopped
scheduler as pending and applies pause/resume/remove to them directly.
"""

import logging

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from pricesync.domain.market.entities import TriggerSpec
from pricesync.domain.market.errors import InvalidTriggerSpecError
from pricesync.domain.market.ports import JobCallback, TriggerHandle, TriggerPort

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {"coalesce": True, "max_instances": 1, "misfire_grace_time": 300}


def build_scheduler(timezone: str = "UTC") -> AsyncIOScheduler:
    """Create the process-wide scheduler with single-instance job defaults."""
    return AsyncIOScheduler(timezone=timezone, job_defaults=JOB_DEFAULTS)


def parse_trigger(spec: TriggerSpec) -> CronTrigger:
    """Turn a crontab spec into an APScheduler trigger.

    Raises:
        InvalidTriggerSpecError: On a malformed expression or unknown timezone.
    """
    try:
        return CronTrigger.from_crontab(spec.cron, timezone=spec.timezone)
    except (ValueError, KeyError) as exc:
        raise InvalidTriggerSpecError(f"{spec.cron} ({spec.timezone})", str(exc)) from exc


class ApschedulerTriggerHandle(TriggerHandle):
    """One APScheduler job, addressed by id."""

    def __init__(self, scheduler: AsyncIOScheduler, name: str) -> None:
        self._scheduler = scheduler
        self.name = name

    @property
    def running(self) -> bool:
        job = self._scheduler.get_job(self.name)
        return job is not None and job.next_run_time is not None

    def activate(self) -> None:
        self._scheduler.resume_job(self.name)

    def deactivate(self) -> None:
        self._scheduler.pause_job(self.name)

    def discard(self) -> None:
        try:
            self._scheduler.remove_job(self.name)
        except JobLookupError:
            logger.debug("Trigger %s already removed", self.name)


class ApschedulerTriggerPort(TriggerPort):
    """Binds trigger specs to coroutine callbacks on an AsyncIOScheduler."""

    def __init__(self, scheduler: AsyncIOScheduler) -> None:
        self._scheduler = scheduler

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def add(
        self, name: str, spec: TriggerSpec, callback: JobCallback
    ) -> ApschedulerTriggerHandle:
        trigger = parse_trigger(spec)
        self._scheduler.add_job(
            callback,
            trigger,
            id=name,
            name=name,
            next_run_time=None,
            replace_existing=True,
        )
        logger.debug("Registered trigger %s (%s %s)", name, spec.cron, spec.timezone)
        return ApschedulerTriggerHandle(self._scheduler, name)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APScheduler started with %d jobs", len(self._scheduler.get_jobs()))

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler stopped")
