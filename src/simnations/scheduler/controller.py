"""Economic job controller: lifecycle, admission control and status tracking."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import replace
from datetime import datetime
from threading import Lock
from typing import Any, AsyncContextManager, Callable, Deque, Dict, Optional, Protocol, Tuple

from simnations.configs.economic_constants import ECONOMIC_JOB_ID, EconomicJobSettings
from simnations.economy.errors import AlreadyRunningError, JobStoppedError
from simnations.jobs.economic_update import EconomicBatchExecutor
from simnations.model.economic_job import JobRunRecord, JobState, JobStatus, RunOutcome, RunResult
from simnations.scheduler.status import serialize_status
from simnations.utils.logger.config import LogLevel
from simnations.utils.logger.logger import Logger
from simnations.utils.logger_factory import EnhancedLoggerFactory, log_exception
from simnations.utils.misc import utc_now

MANUAL = "manual"
SCHEDULE = "schedule"


class TimerHandle(Protocol):
    def next_fire_time(self) -> Optional[datetime]: ...

    def cancel(self) -> None: ...


class Schedule(Protocol):
    expression: str

    def arm(self, callback, on_skipped=None) -> TimerHandle: ...


class Alerter(Protocol):
    async def trigger(self, key: str, message: str, *, severity: LogLevel = ...) -> Any: ...


class EconomicJobController:
    """Own the economic job's lifecycle and guarantee at most one running pass.

    All state transitions happen inside ``self._lock`` without awaiting, so
    the admission check and the switch to RUNNING are one atomic step for
    both scheduled ticks and manual calls. Every transition replaces the
    immutable :class:`JobStatus` snapshot returned by :meth:`get_status`.

    ``stop()`` only closes admission; a pass already running finishes and
    records its result. There is no hard cancel.
    """

    def __init__(
        self,
        executor: EconomicBatchExecutor,
        schedule: Schedule,
        *,
        logger: Logger,
        settings: Optional[EconomicJobSettings] = None,
        alerter: Optional[Alerter] = None,
        run_logger: Callable[..., AsyncContextManager[Logger]] = EnhancedLoggerFactory.job_run_logger,
        clock: Callable[[], datetime] = utc_now,
        subscriber_maxsize: int = 100,
    ) -> None:
        settings = settings or EconomicJobSettings()
        self._executor = executor
        self._schedule = schedule
        self._logger = logger
        self._alerter = alerter
        self._run_logger = run_logger
        self._clock = clock

        self._lock = Lock()
        self._handle: Optional[TimerHandle] = None
        self._running = False
        self._stop_requested = False
        self._pass_task: Optional[asyncio.Task] = None
        self._history: Deque[JobRunRecord] = deque(maxlen=settings.history_size)
        self._subscribers: list[asyncio.Queue] = []
        self._subscriber_maxsize = subscriber_maxsize
        self._status = JobStatus(state=JobState.STOPPED, schedule_expression=schedule.expression)

    # ------------------------------------------------------------------ lifecycle

    def start(self) -> JobStatus:
        """Arm the recurring trigger and move STOPPED -> IDLE.

        Idempotent: a second call logs a warning and returns the current
        status. Must be called from inside the running event loop.
        """
        with self._lock:
            if self._handle is not None:
                self._logger.warning("Economic job already started; start() ignored")
                return self._status
            self._handle = self._schedule.arm(self._on_tick, on_skipped=self._on_skipped)
            self._stop_requested = False
            status = self._publish_locked()
        self._logger.info(
            f"Economic job started (cron='{status.schedule_expression}', next run at {status.next_scheduled_at})"
        )
        return status

    def stop(self) -> JobStatus:
        """Disarm the trigger and close admission without blocking.

        An in-flight pass runs to completion; the status stays RUNNING (with
        ``stop_requested``) until it exits, then becomes STOPPED.
        """
        with self._lock:
            handle, self._handle = self._handle, None
            if handle is None:
                return self._status
            self._stop_requested = self._running
            status = self._publish_locked()
        handle.cancel()
        if status.stop_requested:
            self._logger.info("Economic job stopped; in-flight pass will finish")
        else:
            self._logger.info("Economic job stopped")
        return status

    def get_status(self) -> JobStatus:
        """Return the current immutable status snapshot."""
        return self._status

    @property
    def is_started(self) -> bool:
        return self._handle is not None

    # ------------------------------------------------------------------ execution

    async def execute_manual(self) -> RunResult:
        """Run one pass now, outside the schedule, and return its result.

        :raises AlreadyRunningError: A pass is running; nothing is started.
        :raises JobStoppedError: The controller is stopped.
        :raises Exception: The pass-level failure (e.g. ``RepositoryFetchError``)
            after it has been recorded in the status.
        """
        started_at = self._admit(MANUAL)
        self._logger.info("Manual economic update admitted")
        task = self._spawn(started_at, MANUAL)
        # Shielded: a caller that goes away must not cancel the pass.
        result, error = await asyncio.shield(task)
        if error is not None:
            raise error
        return result

    async def wait_for_pass(self, timeout: Optional[float] = None) -> Optional[RunResult]:
        """Wait for the in-flight pass, if any, and return its result."""
        task = self._pass_task
        if task is None:
            return None
        result, _ = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return result

    async def _on_tick(self) -> None:
        """Scheduled tick: admit a pass or drop the tick. Never raises."""
        try:
            started_at = self._admit(SCHEDULE)
        except AlreadyRunningError:
            self._count_dropped_tick("a pass is still running")
            return
        except JobStoppedError:
            self._logger.warning("Tick ignored: economic job is stopped")
            return
        self._spawn(started_at, SCHEDULE)

    def _on_skipped(self, reason: str) -> None:
        self._count_dropped_tick(f"scheduler skipped the tick ({reason})")

    def _count_dropped_tick(self, reason: str) -> None:
        with self._lock:
            status = self._publish_locked(dropped_ticks=self._status.dropped_ticks + 1)
        self._logger.warning(f"Economic update tick dropped: {reason} (dropped={status.dropped_ticks})")

    def _admit(self, trigger: str) -> datetime:
        with self._lock:
            if self._running:
                raise AlreadyRunningError(self._status.last_run_started_at)
            if self._handle is None:
                raise JobStoppedError()
            started_at = self._clock()
            self._running = True
            self._publish_locked(last_run_started_at=started_at, last_run_trigger=trigger)
            return started_at

    def _spawn(self, started_at: datetime, trigger: str) -> asyncio.Task:
        # The pass is owned here, not by APScheduler, whose shutdown cancels its futures.
        task = asyncio.create_task(self._run_pass(started_at, trigger), name=f"{ECONOMIC_JOB_ID}:{trigger}")
        self._pass_task = task
        return task

    async def _run_pass(self, started_at: datetime, trigger: str) -> Tuple[RunResult, Optional[Exception]]:
        """Execute the batch and fold the outcome into the status.

        Pass-level exceptions are recorded and returned, never raised.
        """
        result: Optional[RunResult] = None
        error: Optional[Exception] = None
        try:
            async with self._run_logger(job_id=ECONOMIC_JOB_ID) as log:
                try:
                    result = await self._executor.run(log, trigger=trigger)
                except Exception as exc:
                    error = exc
                    log_exception(log, exc, context=f"{ECONOMIC_JOB_ID}:{trigger}")
        except Exception as exc:
            # Per-pass logger failed to start or to flush.
            log_exception(self._logger, exc, context=f"{ECONOMIC_JOB_ID}:run_logger")
            if result is None and error is None:
                error = exc
        finally:
            if result is None:
                message = f"{type(error).__name__}: {error}" if error is not None else "Pass cancelled"
                result = RunResult.aborted(started_at, self._clock(), message, trigger=trigger)
            self._complete(result)

        await self._alert(result)
        return result, error

    def _complete(self, result: RunResult) -> None:
        outcome = result.outcome
        with self._lock:
            self._running = False
            self._stop_requested = False
            self._history.append(JobRunRecord.from_result(result))
            prev = self._status
            if result.error is not None:
                last_error = result.error
            elif result.failed_count:
                last_error = f"{result.failed_count} of {result.total_fetched} states failed"
            else:
                last_error = None
            self._publish_locked(
                last_run_finished_at=result.finished_at,
                last_run_outcome=outcome,
                last_run_processed_count=result.processed_count,
                last_run_failed_count=result.failed_count,
                last_error=last_error,
                total_runs=prev.total_runs + 1,
                total_success=prev.total_success + (outcome is RunOutcome.SUCCESS),
                total_partial_failure=prev.total_partial_failure + (outcome is RunOutcome.PARTIAL_FAILURE),
                total_failure=prev.total_failure + (outcome is RunOutcome.FAILURE),
            )
            self._emit_locked({"type": "run", "result": result.to_dict()})

        message = (
            f"Economic update pass ({result.trigger}) finished: {outcome.value} "
            f"processed={result.processed_count} failed={result.failed_count} "
            f"duration_ms={result.duration_ms:.0f}"
        )
        if outcome is RunOutcome.SUCCESS:
            self._logger.info(message)
        else:
            self._logger.error(f"{message} error={last_error}")

    async def _alert(self, result: RunResult) -> None:
        if self._alerter is None or result.outcome is RunOutcome.SUCCESS:
            return
        lines = [
            f"Economic update {result.outcome.value}",
            f"Trigger   : {result.trigger}",
            f"Processed : {result.processed_count}/{result.total_fetched}",
            f"Failed    : {result.failed_count}",
            f"Time(UTC) : {result.finished_at.isoformat()}",
        ]
        if result.error:
            lines.append(f"Error     : {result.error}")
        lines.extend(f"- {f.state_id}: {f.reason}" for f in result.failures[:10])
        severity = LogLevel.CRITICAL if result.outcome is RunOutcome.FAILURE else LogLevel.ERROR
        try:
            await self._alerter.trigger(key=f"{ECONOMIC_JOB_ID}:{result.outcome.value}", message="\n".join(lines), severity=severity)
        except Exception as exc:
            log_exception(self._logger, exc, context=f"{ECONOMIC_JOB_ID}:alert")

    # ------------------------------------------------------------------ status

    def _derive_state(self) -> JobState:
        if self._running:
            return JobState.RUNNING
        if self._handle is not None:
            return JobState.IDLE
        return JobState.STOPPED

    def _next_scheduled_at(self) -> Optional[datetime]:
        if self._handle is not None:
            return self._handle.next_fire_time()
        if self._running:
            # Stopped mid-pass: keep the last known time until the pass exits.
            return self._status.next_scheduled_at
        return None

    def _publish_locked(self, **changes: Any) -> JobStatus:
        status = replace(
            self._status,
            state=self._derive_state(),
            next_scheduled_at=self._next_scheduled_at(),
            stop_requested=self._stop_requested,
            recent_runs=tuple(self._history),
            **changes,
        )
        self._status = status
        self._emit_locked({"type": "status", "status": serialize_status(status)})
        return status

    # ------------------------------------------------------------------ streaming

    def subscribe(self) -> asyncio.Queue:
        """Return a queue receiving status and run events."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._subscriber_maxsize)
        with self._lock:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def _emit_locked(self, payload: Dict[str, Any]) -> None:
        for queue in self._subscribers:
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                # Slow consumer: drop rather than block a state transition.
                pass
