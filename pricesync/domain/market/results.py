"""
Run and sequence result types.

A price-update run ends in exactly one of three shapes:

    RunSuccess         every instrument fetched, writes flushed
    RunPartialFailure  run completed, some instruments could not be fetched
    RunAborted         nothing or only part of the run was applied
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pricesync.domain.market.entities import FailedFetch, UpdateType, ValuationOutcome


class AbortReason(str, Enum):
    """Why a run stopped before completing."""

    STORE_UNAVAILABLE = "store_unavailable"
    NO_INSTRUMENTS = "no_instruments"
    EXCEPTION = "exception"


@dataclass(frozen=True)
class RunResult(ABC):
    """Aggregate outcome of one price-update invocation.

    Only the concrete variants below are instantiable.
    """

    update_type: UpdateType
    total: int = 0
    updated_count: int = 0
    failed: tuple[FailedFetch, ...] = ()
    duration_ms: int = 0
    error: Optional[str] = None

    @property
    @abstractmethod
    def success(self) -> bool:
        raise NotImplementedError

    @property
    @abstractmethod
    def kind(self) -> str:
        raise NotImplementedError

    @property
    def failure_rate(self) -> float:
        """Percentage of instruments that failed, 0.0 for an empty run."""
        if not self.total:
            return 0.0
        return round(len(self.failed) / self.total * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and JSON transport."""
        return {
            "kind": self.kind,
            "success": self.success,
            "update_type": self.update_type.value,
            "total": self.total,
            "updated_count": self.updated_count,
            "failed": [
                {"symbol": f.symbol, "exchange": f.exchange, "error": f.error}
                for f in self.failed
            ],
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass(frozen=True)
class RunSuccess(RunResult):
    """Every fetched instrument succeeded."""

    @property
    def success(self) -> bool:
        return True

    @property
    def kind(self) -> str:
        return "success"


@dataclass(frozen=True)
class RunPartialFailure(RunResult):
    """Run completed but at least one instrument failed to fetch."""

    @property
    def success(self) -> bool:
        return True

    @property
    def kind(self) -> str:
        return "partial_failure"


@dataclass(frozen=True)
class RunAborted(RunResult):
    """Run stopped early. Batches flushed before the abort stay applied."""

    reason: AbortReason = AbortReason.EXCEPTION

    @property
    def success(self) -> bool:
        return False

    @property
    def kind(self) -> str:
        return "aborted"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


def completed_run(
    update_type: UpdateType,
    total: int,
    updated_count: int,
    failed: list[FailedFetch],
    duration_ms: int,
) -> RunResult:
    """Build the result of a run that reached the end of its batches."""
    cls = RunPartialFailure if failed else RunSuccess
    return cls(
        update_type=update_type,
        total=total,
        updated_count=updated_count,
        failed=tuple(failed),
        duration_ms=duration_ms,
    )


class SequenceStage(str, Enum):
    """Stage at which a closing sequence finished."""

    CLOSING = "closing"
    VALUATION = "valuation"


@dataclass(frozen=True)
class SequenceResult:
    """Aggregate outcome of the closing-price → valuation chain."""

    success: bool
    stage: SequenceStage
    closing_result: Optional[RunResult] = None
    valuation_result: Optional[tuple[ValuationOutcome, ...]] = None
    failed_count: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "stage": self.stage.value,
            "closing_result": (
                self.closing_result.to_dict() if self.closing_result else None
            ),
            "valuation_result": (
                [
                    {
                        "entity_id": o.entity_id,
                        "status": o.status.value,
                        "detail": o.detail,
                    }
                    for o in self.valuation_result
                ]
                if self.valuation_result is not None
                else None
            ),
            "failed_count": self.failed_count,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }
