"""Health-check endpoint including the economic job status."""

from fastapi import APIRouter, Depends

from simnations.api.dependencies import get_environment, get_status_reporter
from simnations.scheduler.status import StatusReporter
from simnations.utils.misc import time_iso8601


router = APIRouter()


@router.get("", tags=["health"])
async def healthcheck(
    reporter: StatusReporter = Depends(get_status_reporter),
    environment: str = Depends(get_environment),
) -> dict:
    return {
        "success": True,
        "message": "SimNations backend is running",
        "timestamp": time_iso8601(),
        "environment": environment,
        "economic_job_status": reporter.economic_job_status(),
    }
