"""
Logging configuration
"""

import json
import logging
import sys
from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ErrorContextFormatter(logging.Formatter):
    """
    Appends the ``error_context`` passed through ``extra`` to the line.

    Pipeline exceptions are logged with ``extra={"error_context": e.to_dict()}``;
    without this the context would only reach structured handlers.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        error_context = getattr(record, "error_context", None)
        if error_context:
            line += f" | context={json.dumps(error_context, default=str, ensure_ascii=False)}"
        return line


def setup_logging():
    """Configure application logging"""

    # Get log level from settings
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ErrorContextFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        force=True,
    )

    # Quiet noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {settings.LOG_LEVEL} level")
