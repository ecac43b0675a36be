"""
logging_config.py — Loguru setup for Stack Tracker

Loguru is the only log backend. The ConnectWise connector and the sync
services log through stdlib getLogger(__name__); an intercept handler on
the root logger forwards those records into Loguru with the caller's
module and line intact.

Business Rules:
- Production (https APP_URL that is not localhost): JSON lines on stdout
  plus a rotating JSON file (50 MB, 7 days, gzip)
- Anything else: one colourised human-readable stdout sink
- LOG_LEVEL applies to every sink; default INFO
- httpx/httpcore request chatter and SQLAlchemy echo are held at WARNING

Called by: stacktracker/main.py lifespan
Depends on: LOG_LEVEL, APP_URL, LOG_FILE environment variables
"""

import logging
import os
import sys

from loguru import logger

DEFAULT_LOG_FILE = "/var/log/stacktracker/stacktracker.log"

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")

_DEV_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)


def _is_production() -> bool:
    app_url = os.getenv("APP_URL", "")
    return app_url.startswith("https://") and "localhost" not in app_url


def _add_sinks(level: str, production: bool) -> None:
    if not production:
        logger.add(sys.stdout, level=level, format=_DEV_FORMAT, colorize=True)
        return

    logger.add(sys.stdout, level=level, format="{message}", serialize=True)
    logger.add(
        os.getenv("LOG_FILE", DEFAULT_LOG_FILE),
        level=level,
        serialize=True,
        rotation="50 MB",
        retention="7 days",
        compression="gz",
    )


def setup_logging() -> None:
    """Replace Loguru's default sink and route stdlib logging into it."""
    logger.remove()

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    production = _is_production()
    _add_sinks(level, production)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging ready (level={}, production={})", level, production)


class _InterceptHandler(logging.Handler):
    """Forward a stdlib LogRecord to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk past logging's own frames so Loguru reports the real caller
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
