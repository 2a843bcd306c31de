"""Pipeline Demo API: health-check endpoint and its probes."""

from __future__ import annotations

from collections.abc import Iterable

from pipeline_api.core.config import ApiSettings
from pipeline_api.services.system_probe import SystemResourceProbe
from pipeline_shared.health import HealthAggregator, HealthProbe


def default_probes(settings: ApiSettings) -> list[HealthProbe]:
    """Probes registered when the caller does not supply its own."""
    return [
        SystemResourceProbe(
            memory_threshold=settings.health_memory_threshold_bytes,
            directory=settings.health_probe_directory,
        )
    ]


def build_aggregator(
    settings: ApiSettings, probes: Iterable[HealthProbe] | None = None
) -> HealthAggregator:
    if probes is None:
        probes = default_probes(settings)
    return HealthAggregator(probes, timeout=settings.health_timeout_seconds)
