"""Operator endpoints for the economic update job."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from simnations.api.dependencies import get_app_logger, get_economic_job, get_status_reporter
from simnations.economy.errors import JobNotInitializedError
from simnations.scheduler.controller import EconomicJobController
from simnations.scheduler.status import StatusReporter
from simnations.utils.logger.logger import Logger
from simnations.utils.logger_factory import log_exception
from simnations.utils.misc import time_iso8601

NOT_INITIALIZED_MESSAGE = "Economic job not initialized"


def _unavailable(message: str = NOT_INITIALIZED_MESSAGE) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "message": message, "timestamp": time_iso8601()},
    )


def create_economic_job_router(*, enable_manual_execution: bool) -> APIRouter:
    """Build the router; the execute route only exists when enabled."""
    router = APIRouter()

    @router.get("/status", tags=["economic-job"])
    async def economic_job_status(reporter: StatusReporter = Depends(get_status_reporter)):
        snapshot = reporter.snapshot()
        if snapshot is None:
            return _unavailable()
        return {"success": True, "data": snapshot, "timestamp": time_iso8601()}

    if enable_manual_execution:

        @router.post("/execute", tags=["economic-job"])
        async def execute_economic_job(
            controller: Optional[EconomicJobController] = Depends(get_economic_job),
            logger: Logger = Depends(get_app_logger),
        ):
            if controller is None:
                return _unavailable()
            try:
                result = await controller.execute_manual()
            except JobNotInitializedError as exc:
                return _unavailable(str(exc))
            except Exception as exc:
                log_exception(logger, exc, context="economic_job:execute_manual")
                return JSONResponse(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    content={
                        "success": False,
                        "message": "Failed to execute economic job manually",
                        "error": str(exc),
                        "timestamp": time_iso8601(),
                    },
                )
            return {"success": True, "data": result.to_dict(), "timestamp": time_iso8601()}

    return router
