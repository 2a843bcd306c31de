"""Pipeline Demo API: configuration."""

from __future__ import annotations

from pathlib import Path

from pipeline_shared.config import BaseServiceSettings, Environment


class ApiSettings(BaseServiceSettings):
    """Settings specific to the Pipeline Demo API."""

    service_name: str = "pipeline_demo_api"

    application_name: str = "Pipeline Demo API"
    welcome_message: str = "Welcome to Pipeline Demo API"
    version: str = "1.0.0"

    # ── Health ────────────────────────────────
    health_timeout_seconds: float = 5.0
    health_memory_threshold_bytes: int = 100 * 1024 * 1024
    health_probe_directory: Path | None = None

    @property
    def docs_enabled(self) -> bool:
        return self.environment in (Environment.DEVELOPMENT, Environment.STAGING)

    @property
    def expose_fault_detail(self) -> bool:
        return not self.is_production


settings = ApiSettings()
