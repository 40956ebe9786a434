import sys

from loguru import logger

from identity_brain.core.config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str | None = None, serialize: bool = False) -> None:
    """
    Replace loguru's default sink with a single stderr sink at the configured level.

    Args:
        level: Log level name; defaults to settings.LOG_LEVEL
        serialize: Emit JSON records instead of the colored console format
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        serialize=serialize,
        backtrace=settings.APP_ENV == "development",
        diagnose=settings.APP_ENV == "development",
    )
    logger.debug(f"Logging configured at level {(level or settings.LOG_LEVEL).upper()}")
