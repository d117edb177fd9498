from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.connection import build_default_connection_manager


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    manager = build_default_connection_manager()
    manager.connect()
    try:
        yield
    finally:
        manager.shutdown()
        build_default_connection_manager.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="HealthPod API",
        description="Pill dispenser backend bridging a serial-attached device and a JSON store.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
