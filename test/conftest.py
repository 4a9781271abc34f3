import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from simnations.configs.economic_constants import EconomicJobSettings
from simnations.economy.errors import RepositoryError
from simnations.jobs.economic_update import EconomicBatchExecutor
from simnations.model.simulated_state import SimulatedState
from simnations.scheduler.controller import EconomicJobController

UTC = timezone.utc
PASS_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


class DummyLogger:
    def __init__(self) -> None:
        self.records: List[tuple] = []

    def _record(self, level: str, msg: str) -> None:
        self.records.append((level, msg))

    def debug(self, msg: str) -> None:
        self._record("debug", msg)

    def info(self, msg: str) -> None:
        self._record("info", msg)

    def warning(self, msg: str) -> None:
        self._record("warning", msg)

    def error(self, msg: str) -> None:
        self._record("error", msg)

    def critical(self, msg: str) -> None:
        self._record("critical", msg)

    def messages(self, level: str) -> List[str]:
        return [m for lvl, m in self.records if lvl == level]

    async def start(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass


@asynccontextmanager
async def fake_run_logger(job_id: str, **kwargs: Any):
    yield DummyLogger()


def make_state(index: int, **attributes: Any) -> SimulatedState:
    attrs: Dict[str, Any] = {"gdp": 1000.0, "gdp_growth_rate": 0.02, "inflation_rate": 0.03, "price_index": 100.0}
    attrs.update(attributes)
    return SimulatedState(
        state_id=f"state-{index}",
        key=index,
        name=f"Nation {index}",
        attributes=attrs,
        last_economic_update=datetime(2024, 12, 31, 12, 0, 0, tzinfo=UTC),
    )


class FakeStateRepository:
    """In-memory repository with fault injection hooks."""

    def __init__(
        self,
        states: Optional[List[SimulatedState]] = None,
        *,
        fetch_error: Optional[Exception] = None,
        persist_failures: Optional[Dict[str, int]] = None,
        persist_delay: float = 0.0,
    ) -> None:
        self.states = list(states or [])
        self.fetch_error = fetch_error
        self.persist_failures = dict(persist_failures or {})
        self.persist_delay = persist_delay
        self.gate: Optional[asyncio.Event] = None
        self.fetch_calls = 0
        self.persist_calls: List[str] = []
        self.persisted: List[str] = []

    async def list_eligible_states(self) -> List[SimulatedState]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.states)

    async def persist(self, state: SimulatedState) -> None:
        self.persist_calls.append(state.state_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.persist_delay:
            await asyncio.sleep(self.persist_delay)
        remaining = self.persist_failures.get(state.state_id, 0)
        if remaining:
            self.persist_failures[state.state_id] = remaining - 1
            raise RepositoryError(f"write conflict on {state.state_id}")
        self.persisted.append(state.state_id)


class FakeTimerHandle:
    def __init__(self, schedule: "FakeSchedule") -> None:
        self._schedule = schedule
        self.cancelled = False

    def next_fire_time(self) -> Optional[datetime]:
        return None if self.cancelled else self._schedule.next_time

    def cancel(self) -> None:
        self.cancelled = True


class FakeSchedule:
    """Schedule whose ticks are fired by the test."""

    def __init__(self, expression: str = "*/5 * * * *", next_time: datetime = datetime(2030, 1, 1, tzinfo=UTC)) -> None:
        self.expression = expression
        self.next_time = next_time
        self.callback = None
        self.on_skipped = None
        self.handles: List[FakeTimerHandle] = []

    def arm(self, callback, on_skipped=None) -> FakeTimerHandle:
        self.callback = callback
        self.on_skipped = on_skipped
        handle = FakeTimerHandle(self)
        self.handles.append(handle)
        return handle

    async def fire(self) -> None:
        await self.callback()


class FakeAlerter:
    def __init__(self) -> None:
        self.alerts: List[Dict[str, Any]] = []

    async def trigger(self, key: str, message: str, *, severity=None) -> bool:
        self.alerts.append({"key": key, "message": message, "severity": severity})
        return True


@pytest.fixture
def dummy_logger() -> DummyLogger:
    return DummyLogger()


@pytest.fixture
def fast_settings() -> EconomicJobSettings:
    return EconomicJobSettings(
        schedule_expression="*/5 * * * *",
        batch_size=10,
        max_concurrency=1,
        pass_timeout_seconds=5.0,
        item_retry_attempts=1,
        retry_backoff_seconds=0.0,
        history_size=5,
    )


@pytest.fixture
def states() -> List[SimulatedState]:
    return [make_state(i) for i in range(1, 6)]


@pytest.fixture
def executor_factory(fast_settings):
    def _factory(repository, settings: Optional[EconomicJobSettings] = None, **kwargs: Any) -> EconomicBatchExecutor:
        return EconomicBatchExecutor(repository, settings=settings or fast_settings, clock=lambda: PASS_TIME, **kwargs)

    return _factory


@pytest.fixture
def controller_factory(dummy_logger, fast_settings, executor_factory):
    def _factory(repository, schedule: Optional[FakeSchedule] = None, **kwargs: Any) -> EconomicJobController:
        return EconomicJobController(
            executor_factory(repository),
            schedule or FakeSchedule(),
            logger=dummy_logger,
            settings=fast_settings,
            run_logger=fake_run_logger,
            **kwargs,
        )

    return _factory
