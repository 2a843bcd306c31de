"""Pytest configuration and shared fixtures.

Environment variables are set before anything imports
``pipeline_api.core.config``, which loads settings at import time.
"""

import os

os.environ.setdefault("ENVIRONMENT", "Development")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request
from structlog.testing import CapturingLogger

from pipeline_api.core.config import ApiSettings
from pipeline_api.main import create_app
from pipeline_shared.health import FunctionProbe


def make_request(
    method: str = "GET", path: str = "/", headers=None, scheme: str = "http"
) -> Request:
    """Build a bare Starlette request for driving a pipeline directly."""
    raw_headers = [
        (name.lower().encode(), value.encode())
        for name, value in (headers or {}).items()
    ]
    return Request(
        {
            "type": "http",
            "scheme": scheme,
            "server": ("testserver", 443 if scheme == "https" else 80),
            "method": method,
            "path": path,
            "headers": raw_headers,
            "query_string": b"",
        }
    )


def events(logger: CapturingLogger, method_name: str | None = None) -> list[str]:
    """Event names recorded by a capturing logger, optionally by level."""
    return [
        call.args[0]
        for call in logger.calls
        if method_name is None or call.method_name == method_name
    ]


@pytest.fixture
def log_sink():
    """A structlog logger that records every call."""
    return CapturingLogger()


@pytest.fixture
def healthy_probe():
    async def ok() -> bool:
        return True

    return FunctionProbe("always_ok", ok)


@pytest.fixture
def make_client(log_sink):
    """Factory building a TestClient for a given environment and probe set."""

    def factory(environment: str = "Development", probes=(), **kwargs) -> TestClient:
        settings = ApiSettings(environment=environment)
        app = create_app(
            settings,
            probes=list(probes),
            logger=log_sink,
            configure_logging=False,
            **kwargs,
        )
        return TestClient(app)

    return factory


@pytest.fixture
def client(make_client, healthy_probe):
    """Development client with a single healthy probe."""
    return make_client("Development", probes=[healthy_probe])
