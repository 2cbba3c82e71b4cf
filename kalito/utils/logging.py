"""Loguru sink setup for the CLI."""

import sys

from loguru import logger

from kalito.config.schema import LoggingConfig


def setup_logging(config: LoggingConfig | None = None, verbose: bool = False) -> None:
    """
    Replace loguru's default sink with configured ones.

    Args:
        config: Level and optional rotating file sink.
        verbose: Force DEBUG on stderr.
    """
    config = config or LoggingConfig()
    level = "DEBUG" if verbose else config.level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level)
    if config.file:
        logger.add(
            config.file,
            level=level,
            rotation=config.rotation,
            retention=config.retention,
            enqueue=True,
        )
