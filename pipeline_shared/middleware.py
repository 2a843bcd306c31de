"""Standard pipeline stages and the ASGI adapter that runs them.

Stage order for the service (outermost first):

1. ``fault_boundary``    - converts any unhandled exception into the 500 contract
2. ``security_headers``  - production only; queues the fixed security headers
3. ``authorization``     - pass-through extension point
4. ``request_logging``   - logs the request, then the response status

The route table is the terminal endpoint.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from pipeline_shared.config import Environment
from pipeline_shared.errors import error_response
from pipeline_shared.pipeline import (
    CallNext,
    Pipeline,
    PipelineBuilder,
    PipelineContext,
    Stage,
    only_in,
)

log = structlog.get_logger()

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}
# Only sent over HTTPS; browsers ignore it on plain HTTP
HSTS_HEADER = "Strict-Transport-Security"
HSTS_VALUE = "max-age=2592000"

AuthorizationPolicy = Callable[[PipelineContext], Awaitable[bool]]


def fault_boundary(*, logger: Any = None, expose_detail: bool = False) -> Stage:
    """Outermost stage: no exception gets past it."""
    logger = logger or log

    async def handler(context: PipelineContext, call_next: CallNext) -> Response:
        try:
            return await call_next(context)
        except Exception as exc:
            logger.critical(
                "unhandled_exception",
                method=context.method,
                path=context.path,
                request_id=context.trace_id,
                exc_info=exc,
            )
            response = error_response(
                context.trace_id, exc=exc if expose_detail else None
            )
            context.response = response
            return response

    return Stage(name="fault_boundary", handler=handler)


def security_headers() -> Stage:
    """Queue the fixed security headers; active in production only."""

    async def handler(context: PipelineContext, call_next: CallNext) -> Response:
        context.response_headers.update(SECURITY_HEADERS)
        if context.request.url.scheme == "https":
            context.response_headers[HSTS_HEADER] = HSTS_VALUE
        return await call_next(context)

    return Stage(
        name="security_headers",
        handler=handler,
        active=only_in(Environment.PRODUCTION),
    )


def authorization(policy: AuthorizationPolicy | None = None) -> Stage:
    """Authorization hook. Without a policy every request is permitted."""

    async def handler(context: PipelineContext, call_next: CallNext) -> Response:
        if policy is not None and not await policy(context):
            return Response(status_code=403)
        return await call_next(context)

    return Stage(name="authorization", handler=handler)


def request_logging(*, logger: Any = None) -> Stage:
    """Log every request and, exactly once, the status it finished with."""
    logger = logger or log

    async def handler(context: PipelineContext, call_next: CallNext) -> Response:
        logger.info("handling_request", method=context.method, path=context.path)
        started = time.perf_counter()
        status_code: int | None = None
        outcome = "completed"
        try:
            response = await call_next(context)
            status_code = response.status_code
            return response
        except asyncio.CancelledError:
            # Client went away; nothing is sent, so there is no status
            outcome = "cancelled"
            raise
        except Exception:
            # Answered by the fault boundary
            status_code = 500
            outcome = "faulted"
            raise
        finally:
            logger.info(
                "request_completed",
                status_code=status_code,
                outcome=outcome,
                method=context.method,
                path=context.path,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            )

    return Stage(name="request_logging", handler=handler)


def build_pipeline(
    environment: Environment,
    *,
    logger: Any = None,
    expose_fault_detail: bool = False,
    authorization_policy: AuthorizationPolicy | None = None,
) -> Pipeline:
    """Assemble the standard stage order for ``environment``."""
    return (
        PipelineBuilder(environment)
        .use(fault_boundary(logger=logger, expose_detail=expose_fault_detail))
        .use(security_headers())
        .use(authorization(authorization_policy))
        .use(request_logging(logger=logger))
        .build()
    )


class PipelineMiddleware(BaseHTTPMiddleware):
    """Runs each request through a :class:`Pipeline`; the app is the endpoint."""

    def __init__(self, app: ASGIApp, pipeline: Pipeline) -> None:
        super().__init__(app)
        self.pipeline = pipeline

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        async def endpoint(context: PipelineContext) -> Response:
            return await call_next(context.request)

        return await self.pipeline.handle(request, endpoint)
