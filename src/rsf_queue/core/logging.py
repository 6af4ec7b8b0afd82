"""
Logging configuration module
"""

import sys

from loguru import logger

from rsf_queue.config import Settings


def setup_logging(settings: Settings) -> None:
    """configure logging system"""

    logger.remove()

    logger.add(
        sys.stderr,
        level="DEBUG" if settings.debug else settings.log_level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level.upper(),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="1 day",
            retention="30 days",
            compression="zip",
        )
