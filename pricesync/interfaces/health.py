"""
Health check router.

Liveness plus a summary of the scheduler: how many jobs are registered
and how many of them currently have a live trigger.
"""

from fastapi import APIRouter, Depends

from pricesync.application.market.scheduler import JobScheduler
from pricesync.core.config import settings
from pricesync.interfaces.cron.dependencies import get_job_scheduler
from pricesync.interfaces.cron.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns application status, version and scheduler job counts.",
)
def health_check(
    scheduler: JobScheduler = Depends(get_job_scheduler),
) -> HealthResponse:
    jobs = scheduler.get_status()
    return HealthResponse(
        status="ok",
        version=settings.version,
        jobs_total=len(jobs),
        jobs_running=sum(1 for job in jobs if job.running),
    )
