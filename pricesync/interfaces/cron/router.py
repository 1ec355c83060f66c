"""
FastAPI router for the price-sync scheduler.

All routes delegate to the JobScheduler. No business logic here.
Error mapping is handled by centralized error handlers.
"""

from fastapi import APIRouter, Depends, Request, Response

from pricesync.application.market.scheduler import JobScheduler
from pricesync.domain.market.entities import TriggerSpec, UpdateType
from pricesync.interfaces.cron.dependencies import get_job_scheduler
from pricesync.interfaces.cron.schemas import (
    AdHocJobRequest,
    CronStatusResponse,
    ErrorResponse,
    JobStatusItem,
    RunResponse,
)
from pricesync.shared.security.rate_limiting import TRIGGER_RATE_LIMIT, limiter

router = APIRouter(prefix="/cron", tags=["cron"])


def _status(scheduler: JobScheduler) -> CronStatusResponse:
    return CronStatusResponse(
        jobs=[
            JobStatusItem(name=s.name, type=s.type, running=s.running)
            for s in scheduler.get_status()
        ]
    )


def _run_response(job: str, outcome) -> RunResponse:
    return RunResponse(
        job=job,
        completed=outcome is not None,
        result=outcome.to_dict() if outcome is not None else None,
    )


@router.get(
    "/status",
    response_model=CronStatusResponse,
    summary="Scheduler status",
    description="List every registered and ad hoc job and whether it is live.",
)
def get_status(
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> CronStatusResponse:
    return _status(scheduler)


@router.post(
    "/start",
    response_model=CronStatusResponse,
    summary="Start scheduled jobs",
    description=(
        "Activate every scheduled job. If the database is not connected yet, "
        "activation is deferred until the first connection."
    ),
)
def start_jobs(
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> CronStatusResponse:
    scheduler.start()
    return _status(scheduler)


@router.post(
    "/stop",
    response_model=CronStatusResponse,
    summary="Stop scheduled jobs",
    description="Deactivate every job. Runs already in flight are not cancelled.",
)
def stop_jobs(
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> CronStatusResponse:
    scheduler.stop()
    return _status(scheduler)


@router.post(
    "/trigger/{update_type}",
    response_model=RunResponse,
    responses={422: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Run an update now",
    description=(
        "Run a regular price update, or the closing price update followed by "
        "portfolio valuation, and wait for the result."
    ),
)
@limiter.limit(TRIGGER_RATE_LIMIT)
async def trigger_update(
    request: Request,
    update_type: str,
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> RunResponse:
    outcome = await scheduler.trigger_manual_update(update_type)
    return _run_response("Manual", outcome)


@router.post(
    "/jobs/{name}/run",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Run a scheduled job now",
    description="Run a registered job's body immediately, bypassing its trigger.",
)
@limiter.limit(TRIGGER_RATE_LIMIT)
async def run_job(
    request: Request,
    name: str,
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> RunResponse:
    outcome = await scheduler.run_job_now(name)
    return _run_response(name, outcome)


@router.post(
    "/ad-hoc",
    response_model=JobStatusItem,
    status_code=201,
    responses={422: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Schedule an ad hoc job",
    description="Install and activate an extra cron job. Replaces a job of the same name.",
)
@limiter.limit(TRIGGER_RATE_LIMIT)
def schedule_ad_hoc(
    request: Request,
    body: AdHocJobRequest,
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> JobStatusItem:
    update_type = UpdateType(body.update_type)

    async def run_update():
        return await scheduler.trigger_manual_update(update_type)

    status = scheduler.schedule_ad_hoc(
        body.name, TriggerSpec(body.cron, body.timezone), run_update
    )
    return JobStatusItem(name=status.name, type=status.type, running=status.running)


@router.delete(
    "/ad-hoc/{name}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
    summary="Cancel an ad hoc job",
)
def cancel_ad_hoc(
    name: str,
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> Response:
    scheduler.cancel_ad_hoc(name)
    return Response(status_code=204)
