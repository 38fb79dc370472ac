import os
import sys
from typing import Optional

from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[client]}</cyan> | {name}:{function}:{line} - <level>{message}</level>"
)


def configure_logging(level: Optional[str] = None) -> int:
    """Replace loguru's default sink with a single stderr sink at ``LOG_LEVEL``."""
    selected = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    logger.remove()
    logger.configure(extra={"client": "-"})
    return logger.add(sys.stderr, level=selected, format=DEFAULT_FORMAT, backtrace=False, diagnose=False)
