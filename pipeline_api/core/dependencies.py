"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Request

from pipeline_api.core.config import ApiSettings
from pipeline_shared.pipeline import PipelineContext


def get_settings(request: Request) -> ApiSettings:
    return request.app.state.settings


def get_pipeline_context(request: Request) -> PipelineContext:
    """The context created for this request by the pipeline middleware."""
    return request.state.pipeline_context
