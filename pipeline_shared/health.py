"""Health probes, their aggregation, and the ``/health`` router.

Every registered probe runs concurrently against one shared deadline. The
overall status is the most severe probe status (no probes means healthy).
A probe that raises or misses the deadline is reported as unhealthy; it
never takes the aggregation down with it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, runtime_checkable

import structlog
from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

log = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 5.0
TIMEOUT_CAUSE = "timeout"


class HealthStatus(str, Enum):
    """Probe outcome, ordered by severity."""

    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    UNHEALTHY = "Unhealthy"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @property
    def http_status(self) -> int:
        if self is HealthStatus.UNHEALTHY:
            return status.HTTP_503_SERVICE_UNAVAILABLE
        return status.HTTP_200_OK


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


def worst_status(statuses: Iterable[HealthStatus]) -> HealthStatus:
    return max(statuses, key=lambda s: s.severity, default=HealthStatus.HEALTHY)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProbeResult(BaseModel):
    """Outcome of a single probe run."""

    name: str
    status: HealthStatus
    description: str
    cause: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    duration_ms: float | None = None

    @classmethod
    def healthy(cls, name: str, description: str) -> ProbeResult:
        return cls(name=name, status=HealthStatus.HEALTHY, description=description)

    @classmethod
    def degraded(cls, name: str, description: str) -> ProbeResult:
        return cls(name=name, status=HealthStatus.DEGRADED, description=description)

    @classmethod
    def unhealthy(
        cls, name: str, description: str, cause: str | None = None
    ) -> ProbeResult:
        return cls(
            name=name,
            status=HealthStatus.UNHEALTHY,
            description=description,
            cause=cause,
        )


class HealthReport(BaseModel):
    """Aggregated result of one evaluation."""

    status: HealthStatus
    entries: list[ProbeResult]
    timestamp: datetime = Field(default_factory=_utcnow)
    total_duration_ms: float | None = None

    @classmethod
    def from_results(
        cls, results: list[ProbeResult], total_duration_ms: float | None = None
    ) -> HealthReport:
        return cls(
            status=worst_status(result.status for result in results),
            entries=results,
            total_duration_ms=total_duration_ms,
        )


@runtime_checkable
class HealthProbe(Protocol):
    """A single self-diagnostic.

    ``deadline`` is absolute event-loop time (``loop.time()``); the probe is
    abandoned by the aggregator if it has not finished by then.
    """

    name: str

    async def check(self, deadline: float) -> ProbeResult: ...


class FunctionProbe:
    """Adapts an async callable returning True when healthy."""

    def __init__(self, name: str, check: Callable[[], Awaitable[bool]]) -> None:
        self.name = name
        self._check = check

    async def check(self, deadline: float) -> ProbeResult:
        if await self._check():
            return ProbeResult.healthy(self.name, "ok")
        return ProbeResult.unhealthy(self.name, "failing")


class HealthAggregator:
    """Runs registered probes and merges them into a :class:`HealthReport`."""

    def __init__(
        self,
        probes: Iterable[HealthProbe] = (),
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._probes: list[HealthProbe] = []
        self.timeout = timeout
        for probe in probes:
            self.register(probe)

    @property
    def probes(self) -> tuple[HealthProbe, ...]:
        return tuple(self._probes)

    def register(self, probe: HealthProbe) -> None:
        if any(existing.name == probe.name for existing in self._probes):
            raise ValueError(f"duplicate probe name: {probe.name}")
        self._probes.append(probe)

    async def evaluate(self, deadline: float | None = None) -> HealthReport:
        """Run every probe concurrently and report the worst status.

        Args:
            deadline: Absolute event-loop time by which probes must finish.
                Defaults to now plus the aggregator timeout.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        if deadline is None:
            deadline = started + self.timeout

        probes = list(self._probes)
        tasks = [
            asyncio.ensure_future(self._run_probe(probe, deadline, loop))
            for probe in probes
        ]
        try:
            if tasks:
                await asyncio.wait(tasks, timeout=max(deadline - loop.time(), 0))
        finally:
            # Abandon whatever is still running, including when we are cancelled
            for task in tasks:
                if not task.done():
                    task.cancel()

        results: list[ProbeResult] = []
        for probe, task in zip(probes, tasks):
            if task.done() and not task.cancelled():
                results.append(task.result())
            else:
                log.warning("health_probe_timeout", probe=probe.name)
                results.append(
                    ProbeResult.unhealthy(
                        probe.name,
                        "Probe did not complete before the deadline",
                        cause=TIMEOUT_CAUSE,
                    )
                )

        total_ms = round((loop.time() - started) * 1000, 2)
        return HealthReport.from_results(results, total_duration_ms=total_ms)

    @staticmethod
    async def _run_probe(
        probe: HealthProbe, deadline: float, loop: asyncio.AbstractEventLoop
    ) -> ProbeResult:
        started = loop.time()
        try:
            result = await probe.check(deadline)
            if not isinstance(result, ProbeResult):
                raise TypeError(
                    f"check() returned {type(result).__name__}, expected ProbeResult"
                )
        except Exception as exc:
            log.error("health_probe_failed", probe=probe.name, error=str(exc))
            result = ProbeResult.unhealthy(
                probe.name,
                "Probe raised an exception",
                cause=f"{type(exc).__name__}: {exc}",
            )
        duration = round((loop.time() - started) * 1000, 2)
        return result.model_copy(update={"duration_ms": duration})


def create_health_router(aggregator: HealthAggregator) -> APIRouter:
    """Build the ``/health`` router around ``aggregator``.

    Healthy and degraded reports answer 200, unhealthy answers 503.
    """
    router = APIRouter(tags=["health"])

    @router.get("/health", summary="Aggregated health report", response_model=HealthReport)
    async def health(response: Response) -> HealthReport:
        report = await aggregator.evaluate()
        response.status_code = report.status.http_status
        return report

    return router
