from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class JobState(str, Enum):
    STOPPED = "STOPPED"
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class RunOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class FailureDetail:
    state_id: str
    reason: str


@dataclass(frozen=True)
class RunResult:
    """Outcome of one pass over every eligible state."""

    started_at: datetime
    finished_at: datetime
    processed_count: int
    failed_count: int
    failures: Tuple[FailureDetail, ...] = ()
    total_fetched: int = 0
    timed_out: bool = False
    trigger: str = "schedule"
    error: Optional[str] = None

    @classmethod
    def aborted(cls, started_at: datetime, finished_at: datetime, error: str, *, trigger: str) -> "RunResult":
        """Result of a pass that failed before any state was processed."""
        return cls(
            started_at=started_at,
            finished_at=finished_at,
            processed_count=0,
            failed_count=0,
            total_fetched=0,
            trigger=trigger,
            error=error,
        )

    @property
    def outcome(self) -> RunOutcome:
        if self.error is not None:
            return RunOutcome.FAILURE
        if self.failed_count == 0:
            return RunOutcome.SUCCESS
        if self.processed_count > 0:
            return RunOutcome.PARTIAL_FAILURE
        return RunOutcome.FAILURE

    @property
    def duration_ms(self) -> float:
        return (self.finished_at - self.started_at).total_seconds() * 1000.0

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_ms": round(self.duration_ms, 3),
            "outcome": self.outcome.value,
            "trigger": self.trigger,
            "total_fetched": self.total_fetched,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "timed_out": self.timed_out,
            "error": self.error,
            "failures": [{"state_id": f.state_id, "reason": f.reason} for f in self.failures],
        }


@dataclass(frozen=True)
class JobRunRecord:
    """Compact representation of a finished pass kept in status history."""

    trigger: str
    outcome: RunOutcome
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    processed_count: int
    failed_count: int
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: RunResult) -> "JobRunRecord":
        return cls(
            trigger=result.trigger,
            outcome=result.outcome,
            started_at=result.started_at,
            finished_at=result.finished_at,
            duration_ms=round(result.duration_ms, 3),
            processed_count=result.processed_count,
            failed_count=result.failed_count,
            message=result.error,
        )


@dataclass(frozen=True)
class JobStatus:
    """Immutable snapshot of the job controller, replaced on every transition."""

    state: JobState
    schedule_expression: str
    next_scheduled_at: Optional[datetime] = None
    last_run_started_at: Optional[datetime] = None
    last_run_finished_at: Optional[datetime] = None
    last_run_outcome: Optional[RunOutcome] = None
    last_run_processed_count: int = 0
    last_run_failed_count: int = 0
    last_run_trigger: Optional[str] = None
    last_error: Optional[str] = None
    stop_requested: bool = False
    total_runs: int = 0
    total_success: int = 0
    total_partial_failure: int = 0
    total_failure: int = 0
    dropped_ticks: int = 0
    recent_runs: Tuple[JobRunRecord, ...] = field(default_factory=tuple)

    @property
    def is_running(self) -> bool:
        return self.state is JobState.RUNNING
