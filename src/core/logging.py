"""
Loguru configuration shared by the API and the processing pipeline.
"""

import sys
from loguru import logger
from .config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level> | {extra}"
)


def setup_logging(level: str | None = None, serialize: bool | None = None):
    """
    Replace loguru's default sink with one configured from settings.

    Args:
        level: Minimum level (defaults to LOG_LEVEL)
        serialize: Emit JSON lines instead of text (defaults to LOG_JSON)

    Returns:
        The configured loguru logger
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        serialize=settings.log_json if serialize is None else serialize,
        backtrace=False,
        diagnose=False,
    )
    logger.debug("Logging configured", app=settings.app_name, env=settings.app_env)
    return logger
