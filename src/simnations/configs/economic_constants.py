"""Tunables of the economic update job and their validated settings object."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

from simnations.utils.casting import to_positive_float, to_positive_int

ECONOMIC_JOB_ID = "economic_update"

ECONOMIC_CONSTANTS: Dict[str, Any] = {
    # Every 6 hours, on the hour.
    "JOB_SCHEDULE": "0 */6 * * *",
    "JOB_TIMEZONE": "UTC",
    "MISFIRE_GRACE_TIME": 60,
    "BATCH_SIZE": 50,
    "MAX_CONCURRENCY": 1,
    "PASS_TIMEOUT_SECONDS": 300.0,
    "ITEM_RETRY_ATTEMPTS": 1,
    "RETRY_BACKOFF_SECONDS": 0.5,
    "HISTORY_SIZE": 50,
}


@dataclass(frozen=True)
class EconomicJobSettings:
    """Validated configuration for the schedule, the pass and status history."""

    schedule_expression: str = ECONOMIC_CONSTANTS["JOB_SCHEDULE"]
    timezone: str = ECONOMIC_CONSTANTS["JOB_TIMEZONE"]
    misfire_grace_time: int = ECONOMIC_CONSTANTS["MISFIRE_GRACE_TIME"]
    batch_size: int = ECONOMIC_CONSTANTS["BATCH_SIZE"]
    max_concurrency: int = ECONOMIC_CONSTANTS["MAX_CONCURRENCY"]
    pass_timeout_seconds: float = ECONOMIC_CONSTANTS["PASS_TIMEOUT_SECONDS"]
    item_retry_attempts: int = ECONOMIC_CONSTANTS["ITEM_RETRY_ATTEMPTS"]
    retry_backoff_seconds: float = ECONOMIC_CONSTANTS["RETRY_BACKOFF_SECONDS"]
    history_size: int = ECONOMIC_CONSTANTS["HISTORY_SIZE"]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EconomicJobSettings":
        """Build settings from a flat mapping, falling back to defaults.

        :param data: Keys named after the dataclass fields.
        :return: Validated settings.
        :raises ValueError: If any value is missing its expected type or range.
        """
        defaults = cls()
        expression = str(data.get("schedule_expression") or defaults.schedule_expression).strip()
        if not expression:
            raise ValueError("schedule_expression must not be empty")

        return cls(
            schedule_expression=expression,
            timezone=str(data.get("timezone") or defaults.timezone),
            misfire_grace_time=to_positive_int(
                data.get("misfire_grace_time", defaults.misfire_grace_time), name="misfire_grace_time"
            ),
            batch_size=to_positive_int(data.get("batch_size", defaults.batch_size), name="batch_size"),
            max_concurrency=to_positive_int(
                data.get("max_concurrency", defaults.max_concurrency), name="max_concurrency"
            ),
            pass_timeout_seconds=to_positive_float(
                data.get("pass_timeout_seconds", defaults.pass_timeout_seconds), name="pass_timeout_seconds"
            ),
            item_retry_attempts=to_positive_int(
                data.get("item_retry_attempts", defaults.item_retry_attempts),
                name="item_retry_attempts",
                allow_zero=True,
            ),
            retry_backoff_seconds=to_positive_float(
                data.get("retry_backoff_seconds", defaults.retry_backoff_seconds),
                name="retry_backoff_seconds",
                allow_zero=True,
            ),
            history_size=to_positive_int(data.get("history_size", defaults.history_size), name="history_size"),
        )
