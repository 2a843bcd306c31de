"""Run the API with uvicorn: ``python -m pipeline_api``."""

from __future__ import annotations

import structlog
import uvicorn

from pipeline_api.core.config import settings
from pipeline_shared.logging import setup_logging

log = structlog.get_logger()


def main() -> None:
    setup_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        service_name=settings.service_name,
    )
    environment = settings.environment.value
    log.info("application_launching", environment=environment)

    try:
        uvicorn.run(
            "pipeline_api.main:app",
            host=settings.service_host,
            port=settings.service_port,
            log_config=None,
            proxy_headers=True,
        )
    except Exception as exc:
        log.critical("application_terminated", environment=environment, exc_info=exc)
        raise SystemExit(1) from exc

    log.info("application_exited", environment=environment)


if __name__ == "__main__":
    main()
