"""
Structured Logging
==================

One JSON object per log line on stdout.

Every record carries ``timestamp`` (UTC), ``environment`` and, when the
caller passes one in ``extra``, ``correlation_id``. Values under keys that
look like credentials are masked before they are written.

Usage:
    from sla_sentinel.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Alert created", extra={"request_id": 42, "level": "CRITICAL"})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from pythonjsonlogger import jsonlogger

MASK = "***REDACTED***"
SECRET_MARKERS = ("password", "secret", "token", "api_key")

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "apscheduler")


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding service-wide fields and masking secrets."""

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["environment"] = self.environment
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        for key, value in log_record.items():
            if isinstance(value, str) and any(marker in key.lower() for marker in SECRET_MARKERS):
                log_record[key] = MASK


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """Route all loggers through one stdout JSON handler."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ServiceJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            environment=environment,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **context: Any) -> Iterator[None]:
    """
    Log ``<operation> completed`` with ``latency_ms`` once the block exits,
    whether it returned or raised.

    Usage:
        with log_latency(logger, "evaluation_cycle", requests=12):
            report = await orchestrator.evaluate()
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                **context,
            },
        )
