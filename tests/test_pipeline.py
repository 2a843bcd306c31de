"""
Unit tests for pipeline composition and the standard stages.

Covers:
    - Pre-logic in configured order, post-logic in reverse.
    - Environment gating evaluated once at build time.
    - Continuation contract (short-circuit, double call).
    - Fault boundary: 500 contract, critical log, logging stage still completes.
    - Security headers only in production.
"""

import asyncio
import json

import pytest
from starlette.responses import JSONResponse, Response

from conftest import events, make_request
from pipeline_shared.config import Environment
from pipeline_shared.middleware import (
    HSTS_HEADER,
    SECURITY_HEADERS,
    authorization,
    build_pipeline,
    fault_boundary,
    request_logging,
    security_headers,
)
from pipeline_shared.pipeline import (
    REQUEST_ID_HEADER,
    ContinuationError,
    Pipeline,
    PipelineBuilder,
    Stage,
    only_in,
)


def recording_stage(name, trace):
    async def handler(context, call_next):
        trace.append(f"{name}:pre")
        response = await call_next(context)
        trace.append(f"{name}:post")
        return response

    return Stage(name=name, handler=handler)


def raising_stage(exc=None):
    async def handler(context, call_next):
        raise exc or RuntimeError("stage exploded")

    return Stage(name="raising", handler=handler)


async def ok_endpoint(context):
    return JSONResponse({"ok": True})


@pytest.mark.asyncio
async def test_stages_nest_in_configured_order():
    trace = []

    async def endpoint(context):
        trace.append("endpoint")
        return Response(status_code=204)

    pipeline = Pipeline(
        [recording_stage("a", trace), recording_stage("b", trace), recording_stage("c", trace)],
        Environment.DEVELOPMENT,
    )
    response = await pipeline.handle(make_request(), endpoint)

    assert response.status_code == 204
    assert trace == ["a:pre", "b:pre", "c:pre", "endpoint", "c:post", "b:post", "a:post"]


@pytest.mark.asyncio
async def test_inactive_stages_are_skipped():
    trace = []
    gated = recording_stage("prod_only", trace)
    gated = Stage(name=gated.name, handler=gated.handler, active=only_in(Environment.PRODUCTION))

    pipeline = Pipeline([recording_stage("always", trace), gated], Environment.STAGING)
    await pipeline.handle(make_request(), ok_endpoint)

    assert pipeline.stage_names == ["always"]
    assert trace == ["always:pre", "always:post"]


def test_activation_is_evaluated_once_per_build():
    calls = []

    def predicate(environment):
        calls.append(environment)
        return True

    async def handler(context, call_next):
        return await call_next(context)

    Pipeline([Stage(name="s", handler=handler, active=predicate)], Environment.PRODUCTION)
    assert calls == [Environment.PRODUCTION]


@pytest.mark.asyncio
async def test_short_circuit_skips_inner_stages_and_endpoint():
    trace = []

    async def deny(context):
        return False

    pipeline = Pipeline(
        [authorization(deny), recording_stage("inner", trace)], Environment.DEVELOPMENT
    )

    async def endpoint(context):
        trace.append("endpoint")
        return Response()

    response = await pipeline.handle(make_request(), endpoint)

    assert response.status_code == 403
    assert trace == []


@pytest.mark.asyncio
async def test_authorization_without_policy_permits():
    pipeline = Pipeline([authorization()], Environment.PRODUCTION)
    response = await pipeline.handle(make_request(), ok_endpoint)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_calling_continuation_twice_is_rejected():
    async def greedy(context, call_next):
        await call_next(context)
        return await call_next(context)

    pipeline = Pipeline([Stage(name="greedy", handler=greedy)], Environment.DEVELOPMENT)
    with pytest.raises(ContinuationError):
        await pipeline.handle(make_request(), ok_endpoint)


@pytest.mark.asyncio
async def test_fault_mid_chain_returns_error_contract(log_sink):
    pipeline = (
        PipelineBuilder(Environment.PRODUCTION)
        .use(fault_boundary(logger=log_sink))
        .use(security_headers())
        .use(authorization())
        .use(request_logging(logger=log_sink))
        .use(raising_stage())
        .build()
    )

    response = await pipeline.handle(make_request(path="/boom"), ok_endpoint)
    body = json.loads(response.body)

    assert response.status_code == 500
    assert body["error"] == "An unexpected error occurred"
    assert body["requestId"]
    assert body["requestId"] == response.headers[REQUEST_ID_HEADER]
    assert "timestamp" in body
    assert "detail" not in body
    # Headers queued before the fault still reach the client
    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value

    assert events(log_sink, "critical") == ["unhandled_exception"]
    completed = [c for c in log_sink.calls if c.args[0] == "request_completed"]
    assert len(completed) == 1
    assert completed[0].kwargs["status_code"] == 500
    assert completed[0].kwargs["outcome"] == "faulted"
    assert completed[0].kwargs["path"] == "/boom"


@pytest.mark.asyncio
async def test_fault_in_endpoint_is_contained(log_sink):
    async def broken(context):
        raise ValueError("bad state")

    pipeline = build_pipeline(
        Environment.DEVELOPMENT, logger=log_sink, expose_fault_detail=True
    )
    response = await pipeline.handle(make_request(), broken)
    body = json.loads(response.body)

    assert response.status_code == 500
    assert body["detail"] == {"type": "ValueError", "message": "bad state"}
    assert events(log_sink).count("request_completed") == 1


@pytest.mark.asyncio
async def test_request_logging_logs_both_sides(log_sink):
    pipeline = build_pipeline(Environment.DEVELOPMENT, logger=log_sink)
    await pipeline.handle(make_request(path="/api/info"), ok_endpoint)

    assert events(log_sink, "info") == ["handling_request", "request_completed"]
    started, completed = log_sink.calls
    assert started.kwargs == {"method": "GET", "path": "/api/info"}
    assert completed.kwargs["status_code"] == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "environment", [Environment.DEVELOPMENT, Environment.STAGING]
)
async def test_security_headers_absent_outside_production(environment):
    pipeline = build_pipeline(environment)
    response = await pipeline.handle(make_request(), ok_endpoint)
    for name in SECURITY_HEADERS:
        assert name not in response.headers


@pytest.mark.asyncio
async def test_security_headers_present_in_production():
    pipeline = build_pipeline(Environment.PRODUCTION)
    assert pipeline.stage_names == [
        "fault_boundary",
        "security_headers",
        "authorization",
        "request_logging",
    ]
    response = await pipeline.handle(make_request(), ok_endpoint)
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-XSS-Protection"] == "1; mode=block"


@pytest.mark.asyncio
async def test_context_carries_environment_and_correlation_id():
    seen = {}

    async def endpoint(context):
        seen["environment"] = context.items["environment"]
        seen["correlation_id"] = context.correlation_id
        return Response()

    pipeline = Pipeline([], Environment.STAGING)
    response = await pipeline.handle(
        make_request(headers={"X-Correlation-ID": "abc-123"}), endpoint
    )

    assert seen == {"environment": Environment.STAGING, "correlation_id": "abc-123"}
    assert response.headers["X-Correlation-ID"] == "abc-123"


def test_builder_rejects_duplicate_stage_names():
    builder = PipelineBuilder(Environment.DEVELOPMENT).use(authorization())
    with pytest.raises(ValueError):
        builder.use(authorization())


@pytest.mark.asyncio
async def test_cancelled_request_is_not_logged_as_500(log_sink):
    async def disconnected(context, call_next):
        raise asyncio.CancelledError()

    pipeline = (
        PipelineBuilder(Environment.DEVELOPMENT)
        .use(fault_boundary(logger=log_sink))
        .use(request_logging(logger=log_sink))
        .use(Stage(name="disconnected", handler=disconnected))
        .build()
    )
    with pytest.raises(asyncio.CancelledError):
        await pipeline.handle(make_request(), ok_endpoint)

    completed = [c for c in log_sink.calls if c.args[0] == "request_completed"]
    assert len(completed) == 1
    assert completed[0].kwargs["outcome"] == "cancelled"
    assert completed[0].kwargs["status_code"] is None
    assert events(log_sink, "critical") == []


@pytest.mark.asyncio
async def test_hsts_sent_over_https_in_production():
    pipeline = build_pipeline(Environment.PRODUCTION)
    response = await pipeline.handle(make_request(scheme="https"), ok_endpoint)
    assert response.headers[HSTS_HEADER] == "max-age=2592000"


@pytest.mark.asyncio
async def test_hsts_not_sent_over_plain_http():
    pipeline = build_pipeline(Environment.PRODUCTION)
    response = await pipeline.handle(make_request(scheme="http"), ok_endpoint)
    assert HSTS_HEADER not in response.headers


@pytest.mark.asyncio
async def test_hsts_not_sent_outside_production():
    pipeline = build_pipeline(Environment.DEVELOPMENT)
    response = await pipeline.handle(make_request(scheme="https"), ok_endpoint)
    assert HSTS_HEADER not in response.headers
