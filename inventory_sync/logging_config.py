"""
logging_config.py — Log output for the sync service and its scripts

Every module logs through logging.getLogger(__name__). setup_logging()
hands those records to Loguru, which owns the single stdout sink, so
sync runs, HTTP retries and request ids all land in one stream.

Business Rules:
- One stdout sink; LOG_JSON=true switches it to JSON lines for the
  container log collector, otherwise a short colored line per record
- LOG_LEVEL in the environment beats the configured log_level
- Client and ORM libraries in QUIET_LOGGERS only report WARNING and up,
  so a catalog walk does not print one line per HTTP call
- Request ids bound with logger.contextualize() travel in record extras

Called by: inventory_sync/main.py (on startup), scripts/run_sku_repair.py
Depends on: inventory_sync/config.py (log_level, log_json)
"""

import logging
import os
import sys

from loguru import logger

from .config import settings

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)


def _sink_options(level: str) -> dict:
    if settings.log_json:
        return {"level": level, "format": "{message}", "serialize": True}
    return {"level": level, "format": _CONSOLE_FORMAT, "colorize": True}


def setup_logging() -> None:
    """Replace Loguru's default sink and route stdlib logging into it.

    Safe to call again (tests do); each call starts from no sinks.
    """
    logger.remove()
    level = os.getenv("LOG_LEVEL", settings.log_level).upper()
    logger.add(sys.stdout, **_sink_options(level))

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging configured", level=level, json=settings.log_json)


class _InterceptHandler(logging.Handler):
    """Forward a stdlib LogRecord to Loguru under the same level name."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # depth must point at the module that called log.info(), not logging/__init__.py
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
