"""Ordered, environment-gated request pipeline.

A :class:`Pipeline` nests its active :class:`Stage` handlers around a
terminal endpoint: stage *i* receives stage *i + 1* as ``call_next`` and the
endpoint is the innermost continuation. Pre-logic therefore runs in the
configured order and post-logic in reverse, the same way Starlette
middleware wraps an ASGI app.

Each request gets its own :class:`PipelineContext`. Nothing in a context is
shared with another request; the only process-wide input is the
:class:`~pipeline_shared.config.Environment` fixed when the pipeline is
built.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from starlette.requests import Request
from starlette.responses import Response

from pipeline_shared.config import Environment

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"


@dataclass
class PipelineContext:
    """Request-scoped state threaded through every stage."""

    request: Request
    environment: Environment
    trace_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    arrived_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    response: Response | None = None
    # Applied to whatever response leaves the pipeline
    response_headers: dict[str, str] = field(default_factory=dict)
    items: dict[str, Any] = field(default_factory=dict)

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def path(self) -> str:
        return self.request.url.path


CallNext = Callable[[PipelineContext], Awaitable[Response]]
StageHandler = Callable[[PipelineContext, CallNext], Awaitable[Response]]
Endpoint = Callable[[PipelineContext], Awaitable[Response]]
Activation = Callable[[Environment], bool]


def always(environment: Environment) -> bool:
    return True


def only_in(*environments: Environment) -> Activation:
    """Activation predicate matching the given environments."""
    allowed = frozenset(environments)

    def predicate(environment: Environment) -> bool:
        return environment in allowed

    return predicate


class ContinuationError(RuntimeError):
    """A stage invoked its continuation more than once."""


@dataclass(frozen=True)
class Stage:
    """One named unit of request pre/post processing."""

    name: str
    handler: StageHandler
    active: Activation = always


class Pipeline:
    """Composes active stages around a terminal endpoint."""

    def __init__(self, stages: Iterable[Stage], environment: Environment) -> None:
        self.environment = environment
        self.stages: tuple[Stage, ...] = tuple(stages)
        # Predicates are evaluated once; the environment never changes
        self.active_stages: tuple[Stage, ...] = tuple(
            stage for stage in self.stages if stage.active(environment)
        )

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.active_stages]

    def create_context(self, request: Request) -> PipelineContext:
        context = PipelineContext(request=request, environment=self.environment)
        incoming = request.headers.get(CORRELATION_ID_HEADER)
        if incoming:
            context.correlation_id = incoming
        context.items["environment"] = self.environment
        return context

    async def handle(self, request: Request, endpoint: Endpoint) -> Response:
        """Run ``request`` through the active stages and ``endpoint``."""
        context = self.create_context(request)
        request.state.pipeline_context = context

        # Bind to structlog context vars so every log line includes these IDs
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=context.trace_id,
            correlation_id=context.correlation_id,
        )

        chain = self._compose(endpoint)
        response = await chain(context)
        context.response = response

        for name, value in context.response_headers.items():
            response.headers[name] = value
        response.headers[REQUEST_ID_HEADER] = context.trace_id
        response.headers[CORRELATION_ID_HEADER] = context.correlation_id
        return response

    def _compose(self, endpoint: Endpoint) -> CallNext:
        async def terminal(context: PipelineContext) -> Response:
            response = await endpoint(context)
            context.response = response
            return response

        call_next: CallNext = terminal
        for stage in reversed(self.active_stages):
            call_next = _wrap(stage, call_next)
        return call_next


def _wrap(stage: Stage, call_next: CallNext) -> CallNext:
    async def run(context: PipelineContext) -> Response:
        called = False

        async def guarded_next(ctx: PipelineContext) -> Response:
            nonlocal called
            if called:
                raise ContinuationError(
                    f"stage {stage.name!r} called its continuation twice"
                )
            called = True
            return await call_next(ctx)

        response = await stage.handler(context, guarded_next)
        if context.response is None:
            # Short-circuit: this stage produced the response itself
            context.response = response
        return response

    return run


class PipelineBuilder:
    """Collects stages in order and builds a :class:`Pipeline`."""

    def __init__(self, environment: Environment) -> None:
        self._environment = environment
        self._stages: list[Stage] = []

    def use(self, stage: Stage) -> PipelineBuilder:
        if any(existing.name == stage.name for existing in self._stages):
            raise ValueError(f"duplicate stage name: {stage.name}")
        self._stages.append(stage)
        return self

    def build(self) -> Pipeline:
        return Pipeline(self._stages, self._environment)
