import asyncio
import gc
import os
import signal

import pytest

from conftest import FakeStateRepository
from simnations.model.economic_job import JobState
from simnations.scheduler.signal_handlers import install_signal_handlers, remove_signal_handlers


@pytest.mark.asyncio
async def test_sigterm_stops_controller(controller_factory, dummy_logger, states):
    controller = controller_factory(FakeStateRepository(states))
    controller.start()
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    install_signal_handlers(controller, loop, etl_logger=dummy_logger, stop_event=stop_event)
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(stop_event.wait(), timeout=2)
    finally:
        remove_signal_handlers(loop)

    assert controller.get_status().state is JobState.STOPPED
    assert any("Graceful shutdown" in m for m in dummy_logger.messages("info"))


@pytest.mark.asyncio
async def test_shutdown_waits_for_in_flight_pass(controller_factory, dummy_logger, states):
    repo = FakeStateRepository(states)
    repo.gate = asyncio.Event()
    controller = controller_factory(repo)
    controller.start()
    manual = asyncio.create_task(controller.execute_manual())
    while controller.get_status().state is not JobState.RUNNING:
        await asyncio.sleep(0)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    install_signal_handlers(controller, loop, etl_logger=dummy_logger, stop_event=stop_event, grace_seconds=2.0)
    try:
        os.kill(os.getpid(), signal.SIGINT)
        await asyncio.sleep(0.05)
        assert not stop_event.is_set()
        repo.gate.set()
        await asyncio.wait_for(stop_event.wait(), timeout=2)
    finally:
        remove_signal_handlers(loop)

    result = await manual
    assert result.processed_count == 5
    assert controller.get_status().state is JobState.STOPPED


@pytest.mark.asyncio
async def test_repeated_signals_shut_down_once(controller_factory, dummy_logger, states):
    controller = controller_factory(FakeStateRepository(states))
    controller.start()
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    install_signal_handlers(controller, loop, etl_logger=dummy_logger, stop_event=stop_event)
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        os.kill(os.getpid(), signal.SIGINT)
        await asyncio.sleep(0)
        # The shutdown task must survive a collection while it is pending.
        gc.collect()
        await asyncio.wait_for(stop_event.wait(), timeout=2)
    finally:
        remove_signal_handlers(loop)

    stopped = [m for m in dummy_logger.messages("info") if m == "Economic job stopped"]
    assert len(stopped) == 1
    assert controller.get_status().state is JobState.STOPPED
