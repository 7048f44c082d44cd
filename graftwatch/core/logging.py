"""
GraftWatch - Logging Configuration
One-time setup of the application's log output.
"""

import logging
import sys
from typing import Optional

from graftwatch.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "urllib3", "google")


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Route log records to stdout and return the ``graftwatch`` logger.

    Safe to call more than once (app startup, scripts, reloads); the
    handler is only installed the first time.
    """
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    root = logging.getLogger()
    if not any(getattr(h, "_graftwatch", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._graftwatch = True
        root.addHandler(handler)
    root.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app_logger = logging.getLogger("graftwatch")
    app_logger.setLevel(log_level)
    return app_logger
