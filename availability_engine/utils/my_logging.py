# availability_engine/utils/my_logging.py
"""Logging configuration with per-request correlation ids"""
import logging
import sys
from contextvars import ContextVar

from availability_engine.config.settings import get_settings

# Set by the correlation id middleware for the lifetime of a request
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic",
    "httpx",
    "celery",
    "uvicorn.access",
)


class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the correlation id of the request that produced it"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id_var.get()
        return True


def setup_logging(verbose=True):
    """
    Configure application logging.

    Booking rejections, writer retries and webhook failures all log through
    here, so every line of one request carries the same correlation id.
    """
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)

    if not verbose:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)
