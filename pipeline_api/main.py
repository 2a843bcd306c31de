"""Pipeline Demo API: FastAPI application factory.

Serves informational and health endpoints behind the request pipeline
(fault boundary, security headers, authorization, request logging).
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from pipeline_api.core.config import ApiSettings, settings as default_settings
from pipeline_api.core.events import lifespan
from pipeline_api.routers import diagnostics, info
from pipeline_api.routers.health import build_aggregator
from pipeline_shared.health import HealthProbe, create_health_router
from pipeline_shared.logging import setup_logging
from pipeline_shared.middleware import (
    AuthorizationPolicy,
    PipelineMiddleware,
    build_pipeline,
)

_NOT_FOUND_STATUSES = (404, 405)


async def _not_found_handler(
    request: Request, exc: StarletteHTTPException
) -> Response:
    # Routes match on method and path together; a wrong method is a miss too
    if exc.status_code in _NOT_FOUND_STATUSES:
        return Response(status_code=404)
    return await http_exception_handler(request, exc)


def create_app(
    settings: ApiSettings | None = None,
    *,
    probes: Iterable[HealthProbe] | None = None,
    logger: Any = None,
    authorization_policy: AuthorizationPolicy | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Process settings; defaults to the environment-loaded ones.
        probes: Health probes to register; defaults to the system probe.
        logger: Log sink handed to the pipeline stages.
        authorization_policy: Optional policy for the authorization stage.
        configure_logging: Whether to (re)configure structlog and stdlib logging.
    """
    settings = settings or default_settings

    if configure_logging:
        setup_logging(
            log_level=settings.log_level,
            json_logs=settings.json_logs,
            service_name=settings.service_name,
        )

    application = FastAPI(
        title=settings.application_name,
        version=settings.version,
        docs_url="/swagger" if settings.docs_enabled else None,
        redoc_url=None,
        openapi_url="/swagger/v1/swagger.json" if settings.docs_enabled else None,
        redirect_slashes=False,
        lifespan=lifespan,
    )
    application.state.settings = settings

    pipeline = build_pipeline(
        settings.environment,
        logger=logger,
        expose_fault_detail=settings.expose_fault_detail,
        authorization_policy=authorization_policy,
    )
    application.state.pipeline = pipeline
    application.add_middleware(PipelineMiddleware, pipeline=pipeline)
    application.add_exception_handler(StarletteHTTPException, _not_found_handler)

    aggregator = build_aggregator(settings, probes)
    application.state.health_aggregator = aggregator

    # Routers
    application.include_router(info.router)
    application.include_router(create_health_router(aggregator))
    application.include_router(diagnostics.router)

    return application


app = create_app()
