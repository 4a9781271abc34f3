"""Economic update pass: recompute and persist every active state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from simnations.configs.economic_constants import EconomicJobSettings
from simnations.economy.errors import (
    ItemError,
    ItemPersistError,
    ItemRecomputeError,
    PassTimeoutError,
    RepositoryError,
    RepositoryFetchError,
)
from simnations.economy.recalculator import recompute_economy
from simnations.model.economic_job import FailureDetail, RunResult
from simnations.model.simulated_state import SimulatedState
from simnations.mongo.state_repository import StateRepository
from simnations.utils.logger.logger import Logger
from simnations.utils.logger_factory import log_exception
from simnations.utils.misc import utc_now

Recompute = Callable[[SimulatedState, datetime], SimulatedState]


@dataclass(frozen=True)
class ItemSuccess:
    state_id: str
    attempts: int = 1


@dataclass(frozen=True)
class ItemFailure:
    state_id: str
    reason: str


ItemOutcome = Union[ItemSuccess, ItemFailure]


class EconomicBatchExecutor:
    """Run one pass over the eligible states with per-state fault isolation.

    States are handled in fetch order, in chunks of ``batch_size``; inside a
    chunk at most ``max_concurrency`` states are in flight. A failing state
    becomes an :class:`ItemFailure` and the pass moves on. Only a failed
    fetch aborts the whole pass.
    """

    def __init__(
        self,
        repository: StateRepository,
        *,
        settings: Optional[EconomicJobSettings] = None,
        recompute: Recompute = recompute_economy,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._settings = settings or EconomicJobSettings()
        self._recompute = recompute
        self._clock = clock
        self._sleep = sleep

    @property
    def settings(self) -> EconomicJobSettings:
        return self._settings

    async def run(self, logger: Logger, *, trigger: str = "schedule") -> RunResult:
        """Execute a full pass and return its :class:`RunResult`.

        :param logger: Per-pass logger.
        :param trigger: ``"schedule"`` or ``"manual"``, recorded on the result.
        :return: Counts and ordered failure details of the pass.
        :raises RepositoryFetchError: If the eligible states cannot be listed.
        """
        started_at = self._clock()
        loop = asyncio.get_running_loop()
        timeout = self._settings.pass_timeout_seconds
        deadline = loop.time() + timeout

        states = await self._fetch(timeout)
        logger.info(f"Fetched {len(states)} eligible states (trigger={trigger})")

        outcomes, timed_out = await self._process_all(states, started_at, deadline, logger)

        failures: List[FailureDetail] = []
        processed = 0
        for state, outcome in zip(states, outcomes):
            if outcome is None:
                outcome = ItemFailure(state.state_id, PassTimeoutError(timeout).reason)
            if isinstance(outcome, ItemSuccess):
                processed += 1
            else:
                failures.append(FailureDetail(state_id=outcome.state_id, reason=outcome.reason))

        result = RunResult(
            started_at=started_at,
            finished_at=self._clock(),
            processed_count=processed,
            failed_count=len(failures),
            failures=tuple(failures),
            total_fetched=len(states),
            timed_out=timed_out,
            trigger=trigger,
        )
        if timed_out:
            logger.error(
                f"Pass timed out after {timeout:g}s; "
                f"{sum(1 for o in outcomes if o is None)} states abandoned"
            )
        logger.info(
            f"Pass finished: outcome={result.outcome.value} fetched={result.total_fetched} "
            f"processed={result.processed_count} failed={result.failed_count}"
        )
        return result

    async def _fetch(self, timeout: float) -> List[SimulatedState]:
        try:
            states = await asyncio.wait_for(self._repository.list_eligible_states(), timeout=timeout)
        except RepositoryError as exc:
            raise RepositoryFetchError(str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise RepositoryFetchError(f"Listing eligible states exceeded {timeout:g}s") from exc
        except Exception as exc:
            raise RepositoryFetchError(f"{type(exc).__name__}: {exc}") from exc
        return list(states)

    async def _process_all(
        self,
        states: Sequence[SimulatedState],
        as_of: datetime,
        deadline: float,
        logger: Logger,
    ) -> tuple[List[Optional[ItemOutcome]], bool]:
        """Process ``states`` chunk by chunk until done or past ``deadline``.

        :return: Outcomes aligned with ``states`` (``None`` = abandoned) and
            whether the deadline was hit.
        """
        loop = asyncio.get_running_loop()
        outcomes: List[Optional[ItemOutcome]] = [None] * len(states)
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)
        batch_size = self._settings.batch_size

        for offset in range(0, len(states), batch_size):
            remaining = deadline - loop.time()
            if remaining <= 0:
                return outcomes, True

            chunk = states[offset : offset + batch_size]
            tasks = [
                asyncio.create_task(self._process_one(state, as_of, semaphore, logger))
                for state in chunk
            ]
            try:
                done, pending = await asyncio.wait(tasks, timeout=remaining)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

            for index, task in enumerate(tasks):
                if task in done:
                    outcomes[offset + index] = task.result()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                return outcomes, True

        return outcomes, False

    async def _process_one(
        self,
        state: SimulatedState,
        as_of: datetime,
        semaphore: asyncio.Semaphore,
        logger: Logger,
    ) -> ItemOutcome:
        async with semaphore:
            try:
                self._recompute(state, as_of)
                attempts = await self._persist(state, logger)
            except ItemError as exc:
                logger.warning(f"State {state.state_id} skipped: {exc.reason}")
                return ItemFailure(state.state_id, exc.reason)
            except Exception as exc:
                log_exception(logger, exc, context=f"economic_update:{state.state_id}")
                error = ItemRecomputeError(state.state_id, f"{type(exc).__name__}: {exc}", cause=exc)
                return ItemFailure(state.state_id, error.reason)
            return ItemSuccess(state.state_id, attempts)

    async def _persist(self, state: SimulatedState, logger: Logger) -> int:
        """Write ``state`` back, retrying repository errors with backoff.

        :return: Number of attempts used.
        :raises ItemPersistError: Once the retries are exhausted.
        """
        retries = self._settings.item_retry_attempts
        delay = self._settings.retry_backoff_seconds
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._repository.persist(state)
                return attempt
            except RepositoryError as exc:
                if attempt > retries:
                    raise ItemPersistError(state.state_id, str(exc), cause=exc) from exc
                logger.warning(
                    f"Persist failed for state {state.state_id} (attempt {attempt}); "
                    f"retrying in {delay:g}s: {exc}"
                )
            except Exception as exc:
                raise ItemPersistError(state.state_id, f"{type(exc).__name__}: {exc}", cause=exc) from exc
            await self._sleep(delay)
            delay *= 2
