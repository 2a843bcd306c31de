"""Stable JSON error contract returned for faults and ``/error``."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse

ERROR_MESSAGE = "An unexpected error occurred"


class FaultDetail(BaseModel):
    """Diagnostic detail, only exposed outside production."""

    type: str
    message: str


class ErrorResponse(BaseModel):
    """Body of every 500 response."""

    model_config = ConfigDict(populate_by_name=True)

    error: str = ERROR_MESSAGE
    request_id: str = Field(..., alias="requestId")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    detail: FaultDetail | None = None


def error_response(
    request_id: str,
    *,
    exc: BaseException | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Render the error contract, with fault detail when ``exc`` is given."""
    detail = None
    if exc is not None:
        detail = FaultDetail(type=type(exc).__name__, message=str(exc))
    body = ErrorResponse(request_id=request_id, detail=detail)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
