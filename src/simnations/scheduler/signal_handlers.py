"""Graceful shutdown helpers tying OS signals to the economic job controller."""

import asyncio
import signal
from typing import Optional

from simnations.scheduler.controller import EconomicJobController
from simnations.utils.logger.logger import Logger
from simnations.utils.logger_factory import log_exception

SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(
    controller: Optional[EconomicJobController],
    loop: asyncio.AbstractEventLoop,
    etl_logger: Logger,
    stop_event: asyncio.Event,
    grace_seconds: float = 0.0,
) -> None:
    """Register SIGINT/SIGTERM handlers that stop the job and release ``stop_event``.

    :param controller: Controller to stop, or ``None`` when never constructed.
    :param loop: Event loop used to schedule the shutdown coroutine.
    :param etl_logger: Logger for lifecycle messages and error reporting.
    :param stop_event: Event signalled once teardown completes.
    :param grace_seconds: How long to wait for an in-flight pass before
        letting the process exit; ``0`` exits immediately.
    """

    shutting_down = False
    pending: set[asyncio.Task] = set()

    async def _shutdown():
        nonlocal shutting_down
        if shutting_down:
            return
        shutting_down = True
        try:
            if controller is not None:
                status = controller.stop()
                if status.stop_requested and grace_seconds > 0:
                    etl_logger.info(f"Waiting up to {grace_seconds:g}s for the in-flight pass")
                    await controller.wait_for_pass(timeout=grace_seconds)
        except asyncio.TimeoutError:
            etl_logger.warning("In-flight economic pass still running at exit; it will be interrupted")
        except Exception as e:
            log_exception(etl_logger, e, context="signal_shutdown")
        finally:
            stop_event.set()

    def _spawn_shutdown() -> None:
        task = loop.create_task(_shutdown())
        pending.add(task)
        task.add_done_callback(pending.discard)

    def _handle(signum, frame=None):
        """Schedule the asynchronous shutdown when a signal is received."""
        try:
            etl_logger.info(f"Received signal {signum}. Graceful shutdown started.")
        finally:
            loop.call_soon_threadsafe(_spawn_shutdown)

    try:
        for sig in SIGNALS:
            loop.add_signal_handler(sig, _handle, sig, None)
    except (NotImplementedError, AttributeError):
        for sig in SIGNALS:
            signal.signal(sig, _handle)


def remove_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    for sig in SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except (NotImplementedError, AttributeError):
            signal.signal(sig, signal.SIG_DFL)
