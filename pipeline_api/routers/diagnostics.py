"""Diagnostic ``/error`` endpoint.

Always answers with the 500 error contract. Unhandled exceptions never land
here; the pipeline's fault boundary renders those.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pipeline_api.core.dependencies import get_pipeline_context
from pipeline_shared.errors import ErrorResponse, error_response
from pipeline_shared.pipeline import PipelineContext

log = structlog.get_logger()

router = APIRouter(tags=["diagnostics"])


@router.get(
    "/error",
    status_code=500,
    responses={500: {"model": ErrorResponse}},
)
async def error(
    context: PipelineContext = Depends(get_pipeline_context),
) -> JSONResponse:
    log.error("error_endpoint_hit", path=context.path, request_id=context.trace_id)
    return error_response(context.trace_id)
