"""FastAPI dependencies resolving the economic job handle owned by the app."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from simnations.scheduler.controller import EconomicJobController
from simnations.scheduler.status import StatusReporter
from simnations.utils.logger.logger import Logger


def get_economic_job(request: Request) -> Optional[EconomicJobController]:
    """Return the controller, or ``None`` when it was never constructed."""
    return getattr(request.app.state, "economic_job", None)


def get_status_reporter(
    controller: Optional[EconomicJobController] = Depends(get_economic_job),
) -> StatusReporter:
    return StatusReporter(controller)


def get_app_logger(request: Request) -> Logger:
    return request.app.state.logger


def get_environment(request: Request) -> str:
    return request.app.state.environment
