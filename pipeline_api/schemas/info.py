"""Pydantic schemas for the informational endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RootResponse(BaseModel):
    """Body of ``GET /``."""

    message: str
    version: str
    environment: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ApiInfoResponse(BaseModel):
    """Body of ``GET /api/info``."""

    application: str
    version: str
    environment: str
    server: str
    framework: str
    timestamp: datetime = Field(default_factory=_utcnow)
