"""Schedule provider: cron triggers on APScheduler plus the jobs.yaml loader."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import yaml
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED, JobEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from simnations.configs.economic_constants import ECONOMIC_JOB_ID, EconomicJobSettings
from simnations.utils.logger.logger import Logger

DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 60,
}

UTC = ZoneInfo("UTC")

TickCallback = Callable[[], Awaitable[None]]
SkipCallback = Callable[[str], None]


def build_scheduler(tz: ZoneInfo = UTC, misfire_grace_time: int = DEFAULTS["misfire_grace_time"]) -> AsyncIOScheduler:
    """Create an in-memory ``AsyncIOScheduler`` bound to the running loop."""
    job_defaults = dict(DEFAULTS, misfire_grace_time=misfire_grace_time)
    return AsyncIOScheduler(
        timezone=tz,
        job_defaults=job_defaults,
        event_loop=asyncio.get_running_loop(),
    )


def build_trigger(expression: str, tz: ZoneInfo = UTC) -> CronTrigger:
    """Parse a five-field crontab expression.

    :raises ValueError: If the expression is not valid crontab syntax.
    """
    try:
        return CronTrigger.from_crontab(expression, timezone=tz)
    except (ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"Invalid schedule expression {expression!r}: {exc}") from exc


class ScheduleHandle:
    """Cancellable handle on an armed cron job."""

    def __init__(self, scheduler: AsyncIOScheduler, job_id: str) -> None:
        self._scheduler: Optional[AsyncIOScheduler] = scheduler
        self._job_id = job_id

    @property
    def active(self) -> bool:
        return self._scheduler is not None

    def next_fire_time(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self._job_id)
        return job.next_run_time if job else None

    def cancel(self) -> None:
        """Disarm the trigger. Non-blocking; never touches running work."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is None:
            return
        try:
            scheduler.remove_job(self._job_id)
        except JobLookupError:
            pass
        if scheduler.running:
            scheduler.shutdown(wait=False)


class CronSchedule:
    """Opaque timer: fires a zero-argument coroutine per cron expression."""

    def __init__(
        self,
        expression: str,
        *,
        timezone: str = "UTC",
        job_id: str = ECONOMIC_JOB_ID,
        misfire_grace_time: int = DEFAULTS["misfire_grace_time"],
    ) -> None:
        """Validate ``expression`` eagerly so bad configuration fails at boot.

        :raises ValueError: If the expression or the timezone is invalid.
        """
        self.expression = expression
        try:
            self._tz = ZoneInfo(timezone)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {timezone}") from exc
        self._trigger = build_trigger(expression, self._tz)
        self._job_id = job_id
        self._misfire_grace_time = misfire_grace_time

    @classmethod
    def from_settings(cls, settings: EconomicJobSettings) -> "CronSchedule":
        return cls(
            settings.schedule_expression,
            timezone=settings.timezone,
            misfire_grace_time=settings.misfire_grace_time,
        )

    def next_fire_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Compute the next fire time strictly derived from the expression."""
        now = now or datetime.now(self._tz)
        return self._trigger.get_next_fire_time(None, now)

    def arm(self, callback: TickCallback, on_skipped: Optional[SkipCallback] = None) -> ScheduleHandle:
        """Start a scheduler that awaits ``callback`` at each fire time.

        Must be called from inside the running event loop.

        :param callback: Coroutine function invoked on every tick.
        :param on_skipped: Called with a reason when APScheduler drops a tick.
        :return: Handle used to disarm the trigger.
        """
        scheduler = build_scheduler(self._tz, self._misfire_grace_time)
        scheduler.add_job(
            func=callback,
            trigger=self._trigger,
            id=self._job_id,
            name=self._job_id,
            replace_existing=True,
        )
        if on_skipped is not None:
            def _on_event(event: JobEvent) -> None:
                if event.code & EVENT_JOB_MISSED:
                    on_skipped("misfire")
                elif event.code & EVENT_JOB_MAX_INSTANCES:
                    on_skipped("max_instances")

            scheduler.add_listener(_on_event, EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES)
        scheduler.start()
        return ScheduleHandle(scheduler, self._job_id)


def load_economic_job_settings(
    path: Path,
    etl_logger: Optional[Logger] = None,
    schedule_override: Optional[str] = None,
) -> EconomicJobSettings:
    """Read the ``economic_update`` entry of a jobs YAML file.

    A missing file or entry yields the defaults (with a warning).

    :param path: Path to the YAML file describing jobs.
    :param etl_logger: Logger used for status reporting.
    :param schedule_override: Cron expression taking precedence over the file.
    :return: Validated settings.
    :raises ValueError: If the entry holds invalid values.
    """
    data: Dict[str, Any] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif etl_logger is not None:
        etl_logger.warning(f"Jobs config not found: {path}; using default economic job settings")

    item = next((j for j in data.get("jobs", []) if j.get("id") == ECONOMIC_JOB_ID), None)
    if item is None:
        if data and etl_logger is not None:
            etl_logger.warning(f"No '{ECONOMIC_JOB_ID}' entry in {path}; using defaults")
        item = {}

    trigger_type = item.get("trigger", "cron")
    if trigger_type != "cron":
        raise ValueError(f"Unsupported trigger for {ECONOMIC_JOB_ID}: {trigger_type}")

    flat: Dict[str, Any] = dict(item.get("kwargs") or {})
    for key in ("timezone", "misfire_grace_time"):
        if key in item:
            flat[key] = item[key]
    if item.get("cron"):
        flat["schedule_expression"] = item["cron"]
    if schedule_override:
        flat["schedule_expression"] = schedule_override

    settings = EconomicJobSettings.from_mapping(flat)
    if etl_logger is not None:
        etl_logger.info(
            f"Economic job settings: cron='{settings.schedule_expression}' tz={settings.timezone} "
            f"batch_size={settings.batch_size} timeout={settings.pass_timeout_seconds:g}s "
            f"retries={settings.item_retry_attempts}"
        )
    return settings
