"""Entry point: `python -m cron_runner` / `cron-runner`."""

from __future__ import annotations

import logging
import sys

import uvicorn

from cron_runner.config.logging import configure_logging
from cron_runner.config.settings import load_settings
from cron_runner.errors import ConfigurationError

logger = logging.getLogger("cron_runner")


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(settings)
    logger.info(
        "Cron runner listening on port %d (health: /cron/health, jobs: /cron/)",
        settings.service.port,
        extra={"event": "server_starting"},
    )
    uvicorn.run(
        "cron_runner.api.main:app",
        host=settings.service.host,
        port=settings.service.port,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
