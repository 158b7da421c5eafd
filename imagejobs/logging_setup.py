"""Loguru sinks: console always, error-only and combined files when configured."""

import sys

from loguru import logger

from imagejobs.config import Settings

_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{name}:{function}:{line} - {message} | {extra}"
)


def configure_logging(settings: Settings) -> None:
    logger.remove()

    logger.add(
        sink=sys.stderr,
        format=_FORMAT,
        level=settings.log_level.upper(),
        colorize=False,
    )

    if settings.log_error_file:
        logger.add(
            sink=settings.log_error_file,
            format=_FORMAT,
            level="ERROR",
            rotation="5 MB",
            retention=5,
        )

    if settings.log_combined_file:
        logger.add(
            sink=settings.log_combined_file,
            format=_FORMAT,
            level=settings.log_level.upper(),
            rotation="5 MB",
            retention=5,
        )
