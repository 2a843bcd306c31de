"""Base configuration using Pydantic Settings.

Service settings inherit from ``BaseServiceSettings``. Values are loaded
from environment variables and .env files. The environment name is resolved
once into an :class:`Environment` member and never re-read.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment the process was started in."""

    DEVELOPMENT = "Development"
    STAGING = "Staging"
    PRODUCTION = "Production"

    @classmethod
    def parse(cls, value: str) -> Environment:
        """Resolve a case-insensitive environment name."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise ValueError(
            f"unknown environment {value!r}; expected one of "
            + ", ".join(m.value for m in cls)
        )


class BaseServiceSettings(BaseSettings):
    """Common settings for the service process."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ── General ───────────────────────────────
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"
    service_name: str = "pipeline_demo"
    service_host: str = "0.0.0.0"
    service_port: int = 8000

    @field_validator("environment", mode="before")
    @classmethod
    def _parse_environment(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Environment.parse(value)
        return value

    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION

    @property
    def json_logs(self) -> bool:
        return self.is_production
