"""WebSocket registration helpers for economic job event streaming."""

from fastapi import FastAPI

from .handlers import register


def register_websockets(app: FastAPI) -> None:
    register(app)
