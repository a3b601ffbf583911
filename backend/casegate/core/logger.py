"""
Application logger.

Every module logs through ``logger`` from here so that one handler, one
format and the request correlation id apply everywhere.
"""
from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

from casegate.core.config import settings

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


class CorrelationIdFilter(logging.Filter):
    """Stamps the current request's correlation id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def _build_logger() -> logging.Logger:
    log = logging.getLogger("casegate")
    if log.handlers:
        return log

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
        )
    )
    handler.addFilter(CorrelationIdFilter())
    log.addHandler(handler)
    log.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    log.propagate = False
    return log


logger = _build_logger()
