"""HTTP router factory wiring health and economic job endpoints."""

from fastapi import APIRouter

from . import health
from .economic_job import create_economic_job_router


def create_router(*, enable_manual_execution: bool) -> APIRouter:
    router = APIRouter()
    router.include_router(health.router, prefix="/health")
    router.include_router(
        create_economic_job_router(enable_manual_execution=enable_manual_execution),
        prefix="/admin/economic-job",
    )
    return router
