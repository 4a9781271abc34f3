import asyncio
from datetime import datetime, timezone

import pytest

from conftest import DummyLogger, FakeStateRepository
from simnations.configs.economic_constants import EconomicJobSettings
from simnations.jobs.economic_update import EconomicBatchExecutor
from simnations.model.economic_job import JobState
from simnations.scheduler.controller import EconomicJobController
from simnations.scheduler.scheduler import CronSchedule, load_economic_job_settings

UTC = timezone.utc


def test_next_fire_time_follows_expression():
    schedule = CronSchedule("*/15 * * * *")
    now = datetime(2025, 1, 1, 10, 7, tzinfo=UTC)

    assert schedule.next_fire_time(now) == datetime(2025, 1, 1, 10, 15, tzinfo=UTC)


def test_default_expression_fires_every_six_hours():
    schedule = CronSchedule.from_settings(EconomicJobSettings())
    now = datetime(2025, 1, 1, 7, 30, tzinfo=UTC)

    assert schedule.expression == "0 */6 * * *"
    assert schedule.next_fire_time(now) == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize("expression", ["not a cron", "61 * * * *", "* * *"])
def test_invalid_expression_rejected(expression):
    with pytest.raises(ValueError):
        CronSchedule(expression)


def test_unknown_timezone_rejected():
    with pytest.raises(ValueError, match="timezone"):
        CronSchedule("0 * * * *", timezone="Mars/Olympus")


@pytest.mark.asyncio
async def test_arm_and_cancel():
    calls = []

    async def tick():
        calls.append(1)

    schedule = CronSchedule("*/15 * * * *")
    handle = schedule.arm(tick)
    try:
        next_time = handle.next_fire_time()
        assert next_time > datetime.now(UTC)
        assert next_time.minute % 15 == 0
        assert handle.active
    finally:
        handle.cancel()

    assert not handle.active
    assert handle.next_fire_time() is None
    handle.cancel()
    await asyncio.sleep(0)
    assert calls == []


@pytest.mark.asyncio
async def test_controller_next_run_tracks_cron(fast_settings, dummy_logger):
    schedule = CronSchedule("*/5 * * * *")
    executor = EconomicBatchExecutor(FakeStateRepository([]), settings=fast_settings)
    controller = EconomicJobController(executor, schedule, logger=dummy_logger, settings=fast_settings)

    status = controller.start()
    try:
        assert status.state is JobState.IDLE
        assert status.next_scheduled_at > datetime.now(UTC)
        assert status.next_scheduled_at.minute % 5 == 0
    finally:
        stopped = controller.stop()
    assert stopped.next_scheduled_at is None

    restarted = controller.start()
    try:
        assert restarted.next_scheduled_at > datetime.now(UTC)
    finally:
        controller.stop()
    await asyncio.sleep(0)


def test_load_settings_from_yaml(tmp_path):
    path = tmp_path / "jobs.yaml"
    path.write_text(
        """
jobs:
  - id: economic_update
    trigger: cron
    cron: "30 */2 * * *"
    timezone: Asia/Taipei
    misfire_grace_time: 120
    kwargs:
      batch_size: 25
      max_concurrency: 4
      pass_timeout_seconds: 90
      item_retry_attempts: 2
""",
        encoding="utf-8",
    )
    logger = DummyLogger()
    settings = load_economic_job_settings(path, logger)

    assert settings.schedule_expression == "30 */2 * * *"
    assert settings.timezone == "Asia/Taipei"
    assert settings.misfire_grace_time == 120
    assert (settings.batch_size, settings.max_concurrency) == (25, 4)
    assert settings.pass_timeout_seconds == 90.0
    assert settings.item_retry_attempts == 2
    assert settings.history_size == EconomicJobSettings().history_size
    assert logger.messages("info")


def test_schedule_override_wins(tmp_path):
    path = tmp_path / "jobs.yaml"
    path.write_text('jobs:\n  - id: economic_update\n    cron: "0 * * * *"\n', encoding="utf-8")

    settings = load_economic_job_settings(path, schedule_override="*/10 * * * *")
    assert settings.schedule_expression == "*/10 * * * *"


def test_missing_file_uses_defaults(tmp_path):
    logger = DummyLogger()
    settings = load_economic_job_settings(tmp_path / "absent.yaml", logger)

    assert settings == EconomicJobSettings()
    assert "not found" in logger.messages("warning")[0]


def test_missing_entry_uses_defaults(tmp_path):
    path = tmp_path / "jobs.yaml"
    path.write_text("jobs:\n  - id: something_else\n    cron: '* * * * *'\n", encoding="utf-8")
    logger = DummyLogger()

    assert load_economic_job_settings(path, logger) == EconomicJobSettings()
    assert "economic_update" in logger.messages("warning")[0]


@pytest.mark.parametrize(
    "kwargs",
    [
        "batch_size: 0",
        "max_concurrency: -1",
        "pass_timeout_seconds: abc",
        "history_size: 0",
    ],
)
def test_invalid_values_rejected(tmp_path, kwargs):
    path = tmp_path / "jobs.yaml"
    path.write_text(f"jobs:\n  - id: economic_update\n    kwargs:\n      {kwargs}\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_economic_job_settings(path)


def test_non_cron_trigger_rejected(tmp_path):
    path = tmp_path / "jobs.yaml"
    path.write_text("jobs:\n  - id: economic_update\n    trigger: interval\n", encoding="utf-8")

    with pytest.raises(ValueError, match="interval"):
        load_economic_job_settings(path)
