"""Request pipeline, health aggregation and ambient utilities."""

from pipeline_shared.config import BaseServiceSettings, Environment
from pipeline_shared.health import HealthAggregator, HealthReport, HealthStatus, ProbeResult
from pipeline_shared.logging import setup_logging
from pipeline_shared.pipeline import Pipeline, PipelineBuilder, PipelineContext, Stage

__all__ = [
    "BaseServiceSettings",
    "Environment",
    "HealthAggregator",
    "HealthReport",
    "HealthStatus",
    "Pipeline",
    "PipelineBuilder",
    "PipelineContext",
    "ProbeResult",
    "Stage",
    "setup_logging",
]
