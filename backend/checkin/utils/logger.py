"""
Loguru configuration.

Replaces the default loguru sink with a single stdout sink and routes
stdlib logging (uvicorn, SQLAlchemy) through loguru so every record
shares one format.
"""

import logging
import sys

from loguru import logger as loguru_logger

from checkin.config import get_settings

SERVICE_NAME = "checkin"

log_format = " | ".join(
    (
        "<g>{time:YYYY-MM-DD HH:mm:ss.SSS}</>",
        "<c>{extra[service]}</>",
        "<lvl>{level:<8}</>",
        "<c>{name}:{function}:{line}</>",
        "{message}",
    )
)


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str | None = None) -> None:
    """(Re)install the stdout sink and the stdlib intercept."""
    settings = get_settings()
    min_level = level or ("DEBUG" if settings.debug else settings.log_level.upper())

    loguru_logger.remove()
    loguru_logger.add(sys.stdout, format=log_format, level=min_level)
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


logger = loguru_logger.bind(service=SERVICE_NAME)

configure_logging()
