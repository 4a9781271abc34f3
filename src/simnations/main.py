"""Headless worker: run the economic update job without the HTTP API."""

import asyncio

from simnations.configs.env_config import Env
from simnations.scheduler.bootstrap import bootstrap_economic_job
from simnations.scheduler.signal_handlers import install_signal_handlers
from simnations.utils.logger_factory import EnhancedLoggerFactory, log_exception

SHUTDOWN_GRACE_SECONDS = 10.0


async def main():
    etl_logger = EnhancedLoggerFactory.create_application_logger(
        name="economic_job", enable_stdout=Env.LOG_STDOUT, config_prefix="system"
    )
    await etl_logger.start()
    stop_event = asyncio.Event()
    runtime = None

    try:
        Env.validate()
        if Env.is_test():
            etl_logger.warning("APP_ENV=test: economic job not constructed")
            return
        etl_logger.info("Economic job worker starting")
        runtime = await bootstrap_economic_job(etl_logger)
        loop = asyncio.get_running_loop()
        install_signal_handlers(
            runtime.controller, loop, etl_logger=etl_logger, stop_event=stop_event,
            grace_seconds=SHUTDOWN_GRACE_SECONDS,
        )
        runtime.controller.start()
        await stop_event.wait()
    except Exception as e:
        log_exception(etl_logger, e, context="bootstrap")
        raise
    finally:
        try:
            if runtime is not None:
                await runtime.close()
        finally:
            await etl_logger.shutdown()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
