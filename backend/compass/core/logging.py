"""
Logging configuration shared by the API, Celery workers and operator scripts.
"""

import logging
import sys
from typing import Optional

from compass.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Dependency loggers capped at these levels
LIBRARY_LEVELS = {
    "uvicorn": logging.INFO,
    "celery": logging.INFO,
    "sqlalchemy": logging.WARNING,
    "redis": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "yfinance": logging.WARNING,
}


def setup_logging(level: Optional[str] = None) -> None:
    """Send root logging to stdout at `level`, defaulting to LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name, library_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)
