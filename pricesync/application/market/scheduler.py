"""
Job scheduler for the price-sync pipeline.

Owns the fixed set of time-triggered jobs plus any ad hoc jobs added at
runtime, and their lifecycle:

    Registered ──register()──▶ Scheduled (stopped)
    Scheduled  ──start()─────▶ Running
    Running    ──stop()──────▶ Stopped ──start()──▶ Running

Ad hoc jobs are replaced on reschedule: scheduling a name that is
already taken discards the old trigger before the new one is activated.

Every job body runs behind a boundary that logs and swallows errors, so a
crashed cycle never takes the scheduler down; the job simply fires again
at its next trigger.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional, Union

from pricesync.application.market.alerts import AlertDispatcher
from pricesync.application.market.closing_sequence import ClosingSequenceCoordinator
from pricesync.application.market.dtos import JobDefinition, JobStatus
from pricesync.application.market.price_update_job import PriceUpdateJob
from pricesync.application.market.reports import format_critical_alert
from pricesync.domain.market.entities import JobType, TriggerSpec, UpdateType
from pricesync.domain.market.errors import JobNotFoundError, UnknownUpdateTypeError
from pricesync.domain.market.ports import (
    InstrumentRepository,
    JobCallback,
    TriggerHandle,
    TriggerPort,
)
from pricesync.domain.market.results import RunResult, SequenceResult

logger = logging.getLogger(__name__)

AD_HOC_PREFIX = "ad_hoc:"

JobOutcome = Union[RunResult, SequenceResult]


@dataclass
class RegisteredJob:
    """A trigger handle together with what the status should report."""

    name: str
    job_type: str
    trigger_spec: TriggerSpec
    handle: TriggerHandle


class JobRegistry:
    """Name → job map with replace-on-insert semantics."""

    def __init__(self) -> None:
        self._jobs: dict[str, RegisteredJob] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[RegisteredJob]:
        return iter(list(self._jobs.values()))

    def get(self, name: str) -> Optional[RegisteredJob]:
        return self._jobs.get(name)

    def discard(self, name: str) -> bool:
        """Deactivate and remove ``name``. Returns False if absent."""
        job = self._jobs.pop(name, None)
        if job is None:
            return False
        job.handle.discard()
        return True

    def insert(self, job: RegisteredJob) -> None:
        """Store ``job``, discarding any job already under the same name."""
        self.discard(job.name)
        self._jobs[job.name] = job

    def clear(self) -> None:
        for name in list(self._jobs):
            self.discard(name)


def default_job_definitions(
    timezone: str,
    hourly_cron: str = "0 * * * *",
    morning_cron: str = "30 2 * * *",
    afternoon_cron: str = "30 10 * * *",
    closing_cron: str = "15 10 * * *",
) -> list[JobDefinition]:
    """The fixed set of named price-sync jobs."""
    return [
        JobDefinition(
            "Hourly Update", JobType.HOURLY, TriggerSpec(hourly_cron, timezone), UpdateType.REGULAR
        ),
        JobDefinition(
            "Morning Update", JobType.MORNING, TriggerSpec(morning_cron, timezone), UpdateType.REGULAR
        ),
        JobDefinition(
            "Afternoon Update",
            JobType.AFTERNOON,
            TriggerSpec(afternoon_cron, timezone),
            UpdateType.REGULAR,
        ),
        JobDefinition(
            "Closing Price Update",
            JobType.CLOSING,
            TriggerSpec(closing_cron, timezone),
            UpdateType.CLOSING,
        ),
    ]


class JobScheduler:
    """Registers, activates and reports on time-triggered jobs.

    Args:
        triggers: Clock port that turns trigger specs into handles.
        repository: Store whose connectivity gates activation.
        price_job: Body of regular jobs.
        closing_sequence: Body of the closing job.
        definitions: Fixed job set registered by ``register``.
        alerts: Optional dispatcher for crashed-job alerts.
    """

    def __init__(
        self,
        triggers: TriggerPort,
        repository: InstrumentRepository,
        price_job: PriceUpdateJob,
        closing_sequence: ClosingSequenceCoordinator,
        definitions: list[JobDefinition],
        alerts: Optional[AlertDispatcher] = None,
    ) -> None:
        self._triggers = triggers
        self._repository = repository
        self._price_job = price_job
        self._closing_sequence = closing_sequence
        self._definitions = list(definitions)
        self._alerts = alerts
        self._jobs = JobRegistry()
        self._ad_hoc = JobRegistry()
        self._registered = False
        self._start_requested = False
        self._awaiting_connection = False

    @property
    def registered(self) -> bool:
        return self._registered

    @property
    def awaiting_connection(self) -> bool:
        """True while activation is deferred until the store connects."""
        return self._awaiting_connection

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def register(self) -> None:
        """Bind every job definition to a stopped trigger."""
        for definition in self._definitions:
            self._jobs.discard(definition.name)
            handle = self._triggers.add(
                definition.name,
                definition.trigger_spec,
                self._job_body(definition.name, definition.update_type),
            )
            self._jobs.insert(
                RegisteredJob(
                    name=definition.name,
                    job_type=definition.job_type.value,
                    trigger_spec=definition.trigger_spec,
                    handle=handle,
                )
            )
        self._registered = True
        logger.info("Scheduler initialized with %d jobs", len(self._jobs))

    def start(self) -> None:
        """Activate every job, or defer until the store connects."""
        if not self._registered:
            self.register()
        self._start_requested = True

        if self._repository.is_connected():
            self._activate_all()
            return

        if self._awaiting_connection:
            return
        self._awaiting_connection = True
        logger.info("Waiting for database connection before starting jobs")
        self._repository.once_connected(self._on_connected)

    def stop(self) -> None:
        """Deactivate every registered and ad hoc job."""
        self._start_requested = False
        for job in [*self._jobs, *self._ad_hoc]:
            if job.handle.running:
                job.handle.deactivate()
                logger.info("Stopped: %s", job.name)
        logger.info("All jobs stopped")

    def _on_connected(self) -> None:
        self._awaiting_connection = False
        if not self._start_requested:
            logger.info("Database connected but scheduler was stopped; not starting jobs")
            return
        self._activate_all()
        logger.info("All jobs started after database connection")

    def _activate_all(self) -> None:
        for job in self._jobs:
            if not job.handle.running:
                job.handle.activate()
                logger.info("Started: %s", job.name)

    # ------------------------------------------------------------------
    # Ad hoc jobs
    # ------------------------------------------------------------------

    def schedule_ad_hoc(
        self,
        name: str,
        trigger_spec: TriggerSpec,
        callback: Callable[[], Awaitable[Any]],
    ) -> JobStatus:
        """Install and activate an ad hoc job, replacing any job of that name."""
        if self._ad_hoc.discard(name):
            logger.info("Replaced existing ad hoc job: %s", name)

        handle = self._triggers.add(
            f"{AD_HOC_PREFIX}{name}",
            trigger_spec,
            self._guarded_callback(name, callback),
        )
        self._ad_hoc.insert(
            RegisteredJob(
                name=name,
                job_type=JobType.AD_HOC.value,
                trigger_spec=trigger_spec,
                handle=handle,
            )
        )
        handle.activate()
        logger.info("Scheduled ad hoc job %s (%s %s)", name, trigger_spec.cron, trigger_spec.timezone)
        return JobStatus(name=name, type=JobType.AD_HOC.value, running=handle.running)

    def cancel_ad_hoc(self, name: str) -> None:
        """Remove an ad hoc job.

        Raises:
            JobNotFoundError: If no ad hoc job has that name.
        """
        if not self._ad_hoc.discard(name):
            raise JobNotFoundError(name)
        logger.info("Cancelled ad hoc job: %s", name)

    # ------------------------------------------------------------------
    # Status & manual runs
    # ------------------------------------------------------------------

    def get_status(self) -> list[JobStatus]:
        return [
            JobStatus(name=job.name, type=job.job_type, running=job.handle.running)
            for job in [*self._jobs, *self._ad_hoc]
        ]

    async def trigger_manual_update(
        self, update_type: Union[UpdateType, str] = UpdateType.REGULAR
    ) -> Optional[JobOutcome]:
        """Run a job body immediately, bypassing its trigger.

        Raises:
            UnknownUpdateTypeError: If ``update_type`` is not regular/closing.
        """
        try:
            resolved = UpdateType(update_type)
        except ValueError as exc:
            raise UnknownUpdateTypeError(str(update_type)) from exc

        logger.info("Manual %s update triggered", resolved.value)
        return await self._run_guarded("Manual", lambda: self._execute(resolved))

    async def run_job_now(self, name: str) -> Optional[JobOutcome]:
        """Run a registered job's body immediately.

        Raises:
            JobNotFoundError: If ``name`` is not a registered job.
        """
        definition = next((d for d in self._definitions if d.name == name), None)
        if definition is None:
            raise JobNotFoundError(name)
        return await self._run_guarded(name, lambda: self._execute(definition.update_type))

    # ------------------------------------------------------------------
    # Job bodies
    # ------------------------------------------------------------------

    async def _execute(self, update_type: UpdateType) -> JobOutcome:
        if update_type is UpdateType.CLOSING:
            return await self._closing_sequence.run()
        return await self._price_job.run(UpdateType.REGULAR)

    def _job_body(self, name: str, update_type: UpdateType) -> JobCallback:
        async def body() -> Optional[JobOutcome]:
            return await self._run_guarded(name, lambda: self._execute(update_type))

        body.__name__ = f"job_{name.lower().replace(' ', '_')}"
        return body

    def _guarded_callback(
        self, name: str, callback: Callable[[], Awaitable[Any]]
    ) -> JobCallback:
        async def body() -> Any:
            return await self._run_guarded(name, callback)

        body.__name__ = f"ad_hoc_{name}"
        return body

    async def _run_guarded(
        self, name: str, action: Callable[[], Awaitable[Any]]
    ) -> Any:
        logger.info("Starting %s job", name)
        try:
            result = await action()
        except Exception as exc:
            logger.exception("%s job crashed", name)
            if self._alerts is not None:
                subject, html = format_critical_alert(
                    f"{name} job crashed", str(exc) or type(exc).__name__
                )
                await self._alerts.send(subject, html)
            return None

        success = getattr(result, "success", None)
        if success is True:
            logger.info("%s job completed", name)
        elif success is False:
            logger.error("%s job failed: %s", name, getattr(result, "error", None))
        return result
