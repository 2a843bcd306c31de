"""Informational endpoints: ``/`` and ``/api/info``."""

from __future__ import annotations

import socket

import fastapi
from fastapi import APIRouter, Depends

from pipeline_api.core.config import ApiSettings
from pipeline_api.core.dependencies import get_settings
from pipeline_api.schemas.info import ApiInfoResponse, RootResponse

router = APIRouter(tags=["info"])

FRAMEWORK = f"FastAPI {fastapi.__version__}"


@router.get("/", response_model=RootResponse)
async def root(settings: ApiSettings = Depends(get_settings)) -> RootResponse:
    return RootResponse(
        message=settings.welcome_message,
        version=settings.version,
        environment=settings.environment.value,
    )


@router.get("/api/info", response_model=ApiInfoResponse)
async def api_info(settings: ApiSettings = Depends(get_settings)) -> ApiInfoResponse:
    """Describe the running application and the host serving it."""
    return ApiInfoResponse(
        application=settings.application_name,
        version=settings.version,
        environment=settings.environment.value,
        server=socket.gethostname(),
        framework=FRAMEWORK,
    )
