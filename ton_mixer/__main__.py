"""
Entry point: ``python -m ton_mixer``.

Reads settings from the environment (and a local ``.env`` file) and
serves the mixer API with uvicorn. Keep MIXER_WORKERS at 1 for a given
wallet; seqno bookkeeping is per process.
"""

from __future__ import annotations

import logging
import sys

import structlog
import uvicorn

from ton_mixer.config import Settings, load_environment
from ton_mixer.errors import ConfigError


def configure_logging(level: int = logging.INFO) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def main() -> int:
    configure_logging()
    log = structlog.get_logger()
    load_environment()
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        log.error("mixer_config_invalid", error=exc.message)
        return 2
    log.info("mixer_starting", port=settings.port, workers=settings.workers)
    uvicorn.run(
        "ton_mixer.api:app_factory",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        workers=settings.workers,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
