"""Pipeline Demo API: application lifespan."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log startup and shutdown with the environment the process runs in."""
    settings = app.state.settings
    log.info(
        "application_starting",
        environment=settings.environment.value,
        version=settings.version,
    )
    yield
    log.info("application_stopped", environment=settings.environment.value)
