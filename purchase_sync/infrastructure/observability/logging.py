"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List
from pythonjsonlogger import jsonlogger
from purchase_sync.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


# Per-request INFO lines from the HTTP client
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_crawl_progress(resource: str, pages: int, fetched: int, finished: bool = False) -> None:
    """One line per batch of pages, and a debug line when a collection is exhausted"""
    extra = {"step": "crawl", "resource": resource, "pages": pages, "fetched": fetched}
    if finished:
        logging.debug(f"No more {resource} to fetch", extra=extra)
    else:
        logging.info(f"Progress: {fetched} {resource} fetched across {pages} pages", extra=extra)


def log_sync_outcome(
    state: str,
    processed_customer_ids: List[int],
    failed_customer_ids: List[int],
    duration_ms: float,
    error: str | None = None,
) -> None:
    """Log structured sync cycle outcome for analysis"""
    logging.info(
        "Sync cycle completed",
        extra={
            "step": "sync_complete",
            "state": state,
            "processed_count": len(processed_customer_ids),
            "processed_customer_ids": processed_customer_ids,
            "failed_customer_ids": failed_customer_ids,
            "duration_ms": duration_ms,
            "error": error,
        },
    )
