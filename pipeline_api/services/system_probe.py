"""Sample health probe: process memory and temp-directory writability.

The memory check runs first and returns ``Degraded`` on its own when the
threshold is exceeded, so an unwritable disk is not reported while memory is
high. That ordering is kept on purpose.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any

import psutil
import structlog

from pipeline_shared.health import ProbeResult

log = structlog.get_logger()

DEFAULT_MEMORY_THRESHOLD = 100 * 1024 * 1024  # 100 MiB


def process_rss() -> int:
    """Resident set size of the current process, in bytes."""
    return psutil.Process(os.getpid()).memory_info().rss


class SystemResourceProbe:
    """Checks memory usage, then that the temp directory accepts writes."""

    def __init__(
        self,
        name: str = "sample_health_check",
        *,
        memory_threshold: int = DEFAULT_MEMORY_THRESHOLD,
        directory: Path | str | None = None,
        memory_reader: Callable[[], int] = process_rss,
        logger: Any = None,
    ) -> None:
        self.name = name
        self.memory_threshold = memory_threshold
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self._memory_reader = memory_reader
        self._log = logger or log

    async def check(self, deadline: float) -> ProbeResult:
        try:
            memory_usage = self._memory_reader()
            if memory_usage > self.memory_threshold:
                self._log.warning(
                    "high_memory_usage",
                    memory_bytes=memory_usage,
                    threshold_bytes=self.memory_threshold,
                )
                return ProbeResult.degraded(
                    self.name, f"High memory usage: {memory_usage} bytes"
                )

            await asyncio.to_thread(self._write_probe_file)
        except Exception as exc:
            self._log.error("health_check_failed", probe=self.name, exc_info=exc)
            return ProbeResult.unhealthy(
                self.name,
                "Health check failed",
                cause=f"{type(exc).__name__}: {exc}",
            )

        self._log.info("health_check_passed", probe=self.name)
        return ProbeResult.healthy(self.name, "Application is healthy")

    def _write_probe_file(self) -> None:
        path = self.directory / f"healthcheck-{uuid.uuid4()}.tmp"
        try:
            path.write_text("healthcheck", encoding="utf-8")
        finally:
            path.unlink(missing_ok=True)
