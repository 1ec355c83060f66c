"""
Data Transfer Objects for the market application layer.

DTOs carry data between the interface and application layers.
They are plain dataclasses with no behavior.
"""

from dataclasses import dataclass

from pricesync.domain.market.entities import JobType, TriggerSpec, UpdateType


@dataclass(frozen=True)
class JobDefinition:
    """A statically known, time-triggered job.

    Attributes:
        name: Unique display name, e.g. "Hourly Update".
        job_type: Category reported by the scheduler status.
        trigger_spec: Crontab expression and timezone.
        update_type: ``regular`` runs the price job; ``closing`` runs the
            closing → valuation sequence.
    """

    name: str
    job_type: JobType
    trigger_spec: TriggerSpec
    update_type: UpdateType


@dataclass(frozen=True)
class JobStatus:
    """Output DTO for one row of the scheduler status."""

    name: str
    type: str
    running: bool
