"""
Pydantic schemas for the cron operator API.

These schemas define the API contract for inspecting and driving the
price-sync scheduler. No business logic belongs here.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

JOB_NAME_PATTERN = r"^[A-Za-z0-9 _.-]+$"


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    jobs_total: int
    jobs_running: int


class JobStatusItem(BaseModel):
    """One scheduled job and whether its trigger is live."""

    name: str
    type: str
    running: bool


class CronStatusResponse(BaseModel):
    """Response schema for scheduler status and lifecycle endpoints."""

    jobs: list[JobStatusItem]


class RunResponse(BaseModel):
    """Response schema for manual runs.

    Attributes:
        job: Job name, or ``Manual`` for update-type triggers.
        completed: False if the run crashed before producing a result.
        result: Serialized run or sequence result.
    """

    job: str
    completed: bool
    result: Optional[dict[str, Any]] = None


class AdHocJobRequest(BaseModel):
    """Request schema for installing an ad hoc job.

    Attributes:
        name: Unique job name; an existing ad hoc job of that name is replaced.
        cron: Five-field crontab expression.
        timezone: IANA timezone the expression is evaluated in.
        update_type: Which run the job performs (regular or closing).
    """

    name: str = Field(..., min_length=1, max_length=64, pattern=JOB_NAME_PATTERN)
    cron: str = Field(..., min_length=9, max_length=100, description="e.g. '*/15 3-10 * * 1-5'")
    timezone: str = Field(default="UTC", max_length=64)
    update_type: str = Field(default="regular", pattern=r"^(regular|closing)$")
