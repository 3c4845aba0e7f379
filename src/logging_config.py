"""Centralized logging configuration."""

import sys

from loguru import logger

from src.config import settings


log_format = ' | '.join(
    (
        '<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>',
        '<lvl>{level:<8}</>',
        '<c>{name}::{function}:{line}</>',
        '{message}',
    )
)


def configure_logging() -> None:
    """Replace loguru's default sink with the application sinks"""
    logger.remove()
    logger.add(sys.stderr, format=log_format, level=settings.LOG_LEVEL)

    if settings.LOG_DIR:
        # Daily rotated files, kept for a month
        logger.add(
            f'{settings.LOG_DIR}/{{time:YYYY-MM-DD}}.log',
            format=log_format,
            level=settings.LOG_LEVEL,
            rotation='1 day',
            retention='30 days',
            compression='zip',
            enqueue=True,
        )
