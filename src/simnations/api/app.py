"""FastAPI application entrypoint that boots the economic update job."""

from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI

from simnations.api.routers import create_router
from simnations.api.websockets import register_websockets
from simnations.configs.env_config import PRODUCTION, TEST, Env
from simnations.scheduler.bootstrap import EconomicJobRuntime, bootstrap_economic_job
from simnations.scheduler.controller import EconomicJobController
from simnations.utils.logger.logger import Logger
from simnations.utils.logger_factory import EnhancedLoggerFactory, log_exception

Bootstrap = Callable[[Logger], Awaitable[EconomicJobRuntime]]


def create_app(
    *,
    controller: Optional[EconomicJobController] = None,
    environment: Optional[str] = None,
    logger: Optional[Logger] = None,
    bootstrap: Bootstrap = bootstrap_economic_job,
) -> FastAPI:
    """Build the API around an explicitly owned economic job controller.

    :param controller: Pre-built controller; when ``None`` one is built at
        startup unless the environment is ``test``.
    :param environment: ``development``, ``production`` or ``test``;
        defaults to ``APP_ENV``. The manual execute route is only mounted
        outside production.
    :param logger: Application logger; defaults to a rotating-file logger.
    :param bootstrap: Coroutine building the runtime from the environment.
    :return: Configured FastAPI application.
    """
    environment = environment or Env.APP_ENV
    app_logger = logger or EnhancedLoggerFactory.create_application_logger(
        name="api", enable_stdout=Env.LOG_STDOUT, config_prefix="system"
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app_logger.start()
        runtime: Optional[EconomicJobRuntime] = None
        try:
            if app.state.economic_job is None and environment != TEST:
                Env.validate()
                runtime = await bootstrap(app_logger)
                app.state.economic_job = runtime.controller
            if app.state.economic_job is not None:
                app.state.economic_job.start()
            app_logger.info(f"SimNations API started (environment={environment})")
        except Exception as e:
            log_exception(app_logger, e, context="bootstrap")
            await app_logger.shutdown()
            raise
        try:
            yield
        finally:
            try:
                if runtime is not None:
                    await runtime.close()
                    app.state.economic_job = None
                elif app.state.economic_job is not None:
                    app.state.economic_job.stop()
            finally:
                app_logger.info("SimNations API shutdown")
                await app_logger.shutdown()

    app = FastAPI(title="SimNations Economic Job API", version="1.0.0", lifespan=lifespan)
    app.state.economic_job = controller
    app.state.environment = environment
    app.state.logger = app_logger
    app.include_router(create_router(enable_manual_execution=environment != PRODUCTION))
    register_websockets(app)
    return app


app = create_app()
