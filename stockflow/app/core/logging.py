"""
Logging setup.

All application loggers live under the "stockflow" namespace so that one
call to setup_logging() configures every module.
"""
import logging
import sys
from typing import Optional

from stockflow.app.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure the root "stockflow" logger with a console handler.

    Safe to call more than once: existing handlers are replaced.
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger("stockflow")
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"stockflow.{name}")
